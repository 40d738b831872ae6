# ABOUTME: Provides the command-line entry point for running the analytics engine on exports.
# ABOUTME: Loads statements, catalog and learners, then prints Rich tables or writes parquet reports.

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .aggregation import (
    activity_overview,
    attempt_outcomes,
    average_grade,
    average_scaled_score,
    average_time_on_task,
    compare_with_community,
    completed_activity_ids,
    completed_before_report,
    overview_frame,
    pass_percentage,
    score_distribution,
    statement_statistics,
)
from .config import EngineConfig, load_engine_config
from .duration import format_minutes
from .event_index import EventIndex, Selector, build_index, find_activity_by_title
from .inactivity import inactivity_frame, inactivity_report
from .insights import generate_insight_report
from .learner_metrics import learner_metrics, persona_distribution
from .recommendation import recommend_activities
from .schemas import LearnerProfile
from .statements import load_catalog, load_learners, load_statements

console = Console()
app = typer.Typer(help="Aggregate xAPI learning statements and recommend next activities.")

SEVERITY_COLORS = {"low": "yellow", "medium": "orange3", "high": "red"}


def _log(tag: str, message: str) -> None:
    console.print(f"[{tag}] {message}", markup=False, highlight=False)


def _statements_option():
    return typer.Option(Path("data/statements.json"), "--statements", help="xAPI statements export (JSON or YAML).")


def _catalog_option():
    return typer.Option(Path("data/course.json"), "--catalog", help="Course catalog document (JSON or YAML).")


def _config_option():
    return typer.Option(None, "--config", help="Engine config YAML; defaults to $XAPI_ANALYTICS_CONFIG.")


def _load_config(path: Optional[Path]) -> EngineConfig:
    try:
        return load_engine_config(path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _load_index(statements_path: Path, catalog_path: Path) -> EventIndex:
    try:
        catalog = load_catalog(catalog_path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--catalog") from exc
    try:
        parsed = load_statements(statements_path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--statements") from exc

    _log("load", f"Parsed {len(parsed.events):,} statements ({parsed.skipped:,} skipped)")
    _log("load", f"Catalog {catalog.title or catalog.id or catalog_path.name}: {len(catalog)} activities")
    return build_index(parsed.events, catalog)


def _load_learners(path: Optional[Path]) -> List[LearnerProfile]:
    if path is None:
        return []
    try:
        learners = load_learners(path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--learners") from exc
    _log("load", f"Loaded {len(learners):,} learner profiles")
    return learners


def _write_parquet(frame, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    frame.to_parquet(output, index=False)
    _log("export", f"Wrote {len(frame):,} rows to {output}")


@app.command()
def overview(
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    output: Optional[Path] = typer.Option(None, "--output", help="Optional parquet export of the overview."),
) -> None:
    """
    Per-activity completion, time, grade, attempts and rating summary.
    """
    index = _load_index(statements, catalog)
    rows = activity_overview(index)
    if not rows:
        console.print("[yellow]No catalog activities appear in the statements.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Activity", "Section", "Difficulty", "Typical", "Completed", "Avg Time", "Avg Grade", "Attempts", "Rating"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row.title,
            row.section,
            row.difficulty,
            f"{row.typical_learning_time}min",
            str(row.completion_count),
            row.average_learning_time.display(unit="min"),
            row.average_grade.display(),
            row.average_attempts_to_pass.display(),
            row.average_rating.display(),
        )
    console.print(table)

    if output is not None:
        _write_parquet(overview_frame(rows), output)


@app.command()
def learner(
    actor_id: str = typer.Option(..., "--actor-id", help="Learner actor identifier (mbox)."),
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    config: Optional[Path] = _config_option(),
) -> None:
    """
    Learner history, learning time and inactivity compared with the cohort.
    """
    engine_config = _load_config(config)
    index = _load_index(statements, catalog)
    if actor_id not in index.by_learner:
        console.print(f"[red]No statements for learner {actor_id}[/red]")
        raise typer.Exit(code=1)

    metrics = learner_metrics(index, actor_id, engine_config.inactivity_threshold_days)
    console.rule(f"[bold blue]Learner {actor_id}[/bold blue]")
    console.print(f"[bold]Total learning time:[/] {format_minutes(metrics.total_minutes)}")
    console.print(f"[bold]Completion:[/] {_percent(metrics.completion_ratio)}")
    if metrics.timeline is not None:
        console.print(
            f"[bold]Active days:[/] {metrics.timeline.active_days}/{metrics.timeline.total_days} "
            f"({metrics.timeline.active_percentage:.1f}%)"
        )
    if metrics.inactivity is not None:
        gap = metrics.inactivity
        console.print(
            f"[red]Inactive for {gap.gap_days:.1f} days between {gap.start:%Y-%m-%d} and {gap.end:%Y-%m-%d}[/red]"
        )

    comparison_table = Table(show_header=True, header_style="bold magenta")
    comparison_table.add_column("Metric")
    comparison_table.add_column("Learner")
    comparison_table.add_column("Community")
    for label, aggregate in (
        ("Average grade", average_grade),
        ("Scaled score %", average_scaled_score),
        ("Time on task (min)", average_time_on_task),
        ("Passed attempts %", pass_percentage),
    ):
        comparison = compare_with_community(aggregate, index, actor_id)
        comparison_table.add_row(label, comparison.learner.display(), comparison.community.display())
    learner_attempts = attempt_outcomes(index, Selector.for_learner(actor_id))
    community_attempts = attempt_outcomes(index, Selector())
    comparison_table.add_row(
        "Passed / failed",
        f"{learner_attempts.passed} / {learner_attempts.failed}",
        f"{community_attempts.passed} / {community_attempts.failed}",
    )
    console.print(comparison_table)

    history_table = Table(show_header=True, header_style="bold magenta")
    for column in ("Activity", "Attempts", "Completed", "Scores", "Duration", "Last Attempt"):
        history_table.add_column(column)
    for row in metrics.history:
        history_table.add_row(
            row.title,
            str(row.attempts),
            "yes" if row.completed else "no",
            ", ".join(f"{score:g}" for score in row.scores) or "-",
            f"{row.total_duration}min",
            f"{row.last_attempt:%Y-%m-%d %H:%M}" if row.last_attempt else "-",
        )
    console.print(history_table)


@app.command()
def recommend(
    actor_id: str = typer.Option(..., "--actor-id", help="Learner actor identifier (mbox)."),
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    learners: Optional[Path] = typer.Option(None, "--learners", help="Learner profiles (JSON or YAML) with personas."),
    persona: Optional[str] = typer.Option(None, "--persona", help="Override the learner's persona."),
    config: Optional[Path] = _config_option(),
) -> None:
    """
    Rank the learner's next activities using persona weights.
    """
    engine_config = _load_config(config)
    index = _load_index(statements, catalog)
    profile = _resolve_profile(actor_id, _load_learners(learners), persona)

    recs = recommend_activities(
        learner=profile,
        learner_events=index.for_learner(actor_id),
        catalog=index.catalog,
        persona_weights=engine_config.persona_weights,
        max_items=engine_config.recommendation_count,
        review_difficulty_threshold=engine_config.review_difficulty_threshold,
    )
    if not recs:
        if set(index.catalog.activity_ids()) <= completed_activity_ids(index, actor_id):
            console.print(f"[green]{actor_id} has completed every activity.[/green]")
        else:
            console.print(f"[yellow]No activity to recommend for {actor_id}: prerequisites are not met.[/yellow]")
        return

    rec_table = Table(show_header=True, header_style="bold magenta")
    for column in ("Activity", "Match", "Difficulty", "Duration", "Reason"):
        rec_table.add_column(column)
    for rec in recs:
        color = "green" if rec.score >= 0.8 else "orange3" if rec.score >= 0.6 else "red"
        title = f"{rec.activity.title} (review)" if rec.is_review else rec.activity.title
        rec_table.add_row(
            title,
            f"[{color}]{rec.score * 100:.0f}%[/{color}]",
            f"{rec.difficulty_match:.2f}",
            f"{rec.duration_match:.2f}",
            rec.reason,
        )
    console.print(rec_table)


@app.command()
def inactivity(
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Gap in days; defaults to the engine config."),
    output: Optional[Path] = typer.Option(None, "--output", help="Optional parquet export of detected gaps."),
    config: Optional[Path] = _config_option(),
) -> None:
    """
    List learners whose longest pause meets the inactivity threshold.
    """
    engine_config = _load_config(config)
    threshold_days = engine_config.inactivity_threshold_days if threshold is None else threshold
    index = _load_index(statements, catalog)
    gaps = inactivity_report(index, threshold_days)

    if not gaps:
        console.print(f"[green]No learner was inactive for {threshold_days:g} days or more.[/green]")
    else:
        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Learner", "Gap (days)", "From", "To", "Active Days"):
            table.add_column(column)
        for gap in gaps:
            table.add_row(
                gap.actor_id,
                f"{gap.gap_days:.1f}",
                f"{gap.start:%Y-%m-%d}",
                f"{gap.end:%Y-%m-%d}",
                f"{gap.active_days}/{gap.total_days} ({gap.active_percentage:.1f}%)",
            )
        console.print(table)

    if output is not None:
        _write_parquet(inactivity_frame(gaps), output)


@app.command()
def precedence(
    activity: str = typer.Option(..., "--activity", help="Target activity id or title."),
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
) -> None:
    """
    Which activities learners completed before finishing the target activity.
    """
    index = _load_index(statements, catalog)
    target = index.activity(activity) or find_activity_by_title(activity, index.catalog)
    if target is None:
        raise typer.BadParameter(f"Unknown activity '{activity}'", param_hint="--activity")

    report = completed_before_report(index, target.id)
    console.print(
        f"[bold]{target.title}:[/] {report.completers} completed, {report.non_completers} did not complete"
    )
    if not report.entries:
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Completed Before")
    table.add_column("Learners")
    table.add_column("Share")
    for entry in report.entries:
        table.add_row(entry.title, str(entry.count), f"{entry.percentage:.1f}%")
    console.print(table)


@app.command()
def insights(
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    severity: Optional[str] = typer.Option(None, "--severity", help="Optional severity filter."),
    output: Optional[Path] = typer.Option(None, "--output", help="Optional parquet export of alerts."),
    config: Optional[Path] = _config_option(),
) -> None:
    """
    Struggling learners, mistimed activities and poorly rated content.
    """
    engine_config = _load_config(config)
    index = _load_index(statements, catalog)
    report = generate_insight_report(index, dict(engine_config.insight_thresholds))
    if severity:
        report = report[report["severity"] == severity]

    if report.empty:
        console.print("[green]No insights to report.[/green]")
    for _, alert in report.iterrows():
        color = SEVERITY_COLORS.get(alert["severity"], "white")
        console.print(f"[{color}]{alert['alert_type']} ({alert['severity']}): {alert['subject_id']}[/{color}]")
        for k, v in alert["evidence"].items():
            console.print(f"  {k}: {v}")
        console.print(f"  → {alert['recommendation']}")

    if output is not None:
        _write_parquet(report.assign(evidence=report["evidence"].astype(str)), output)


@app.command()
def statistics(
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    learners: Optional[Path] = typer.Option(None, "--learners", help="Learner profiles; defaults to every actor in the log."),
    top: int = typer.Option(10, "--top", help="Rows per usage table."),
) -> None:
    """
    Statement counts per verb, activity and section with per-learner averages.
    """
    index = _load_index(statements, catalog)
    profiles = _load_learners(learners) if learners is not None else None
    stats = statement_statistics(index, profiles)

    console.rule("[bold blue]Statement statistics[/bold blue]")
    console.print(f"[bold]Statements:[/] {stats.total_statements:,}")
    console.print(f"[bold]Learners:[/] {stats.learner_count:,}")
    console.print(f"[bold]Activities:[/] {stats.activity_count:,}")
    console.print(f"[bold]Statements per learner:[/] {stats.statements_per_learner.display()}")
    console.print(f"[bold]Completed activities per learner:[/] {stats.completed_per_learner.display()}")
    console.print(f"[bold]Average score:[/] {stats.average_score.display()}")
    console.print(f"[bold]Learning time per learner:[/] {stats.duration_per_learner.display(unit='min')}")

    titles = {activity.id: activity.title for activity in index.catalog.activities()}
    for heading, usage, label in (
        ("Verb", stats.verb_usage, str),
        ("Activity", stats.activity_usage, lambda key: titles.get(key, key)),
        ("Section", stats.section_usage, str),
    ):
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column(heading)
        table.add_column("Statements")
        for key, count in list(usage.items())[:top]:
            table.add_row(label(key), f"{count:,}")
        console.print(table)


@app.command()
def scores(
    statements: Path = _statements_option(),
    catalog: Path = _catalog_option(),
    output: Optional[Path] = typer.Option(None, "--output", help="Optional parquet export of the distribution."),
) -> None:
    """
    Per-activity distribution of scored raw values.
    """
    index = _load_index(statements, catalog)
    distribution = score_distribution(index)
    if distribution.empty:
        console.print("[yellow]No scored statements for catalog activities.[/yellow]")
    else:
        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Activity", "Scores", "Min", "Q1", "Median", "Q3", "Max"):
            table.add_column(column)
        for _, row in distribution.iterrows():
            table.add_row(
                row["title"],
                str(row["count"]),
                *(f"{row[column]:g}" for column in ("min", "q1", "median", "q3", "max")),
            )
        console.print(table)

    if output is not None:
        _write_parquet(distribution, output)


@app.command()
def personas(
    learners: Path = typer.Option(Path("data/learners.json"), "--learners", help="Learner profiles (JSON or YAML)."),
) -> None:
    """
    Learner counts per persona.
    """
    distribution = persona_distribution(_load_learners(learners))
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Persona")
    table.add_column("Learners")
    table.add_column("Share")
    for _, row in distribution.iterrows():
        table.add_row(row["persona"], str(row["count"]), f"{row['percentage']:.1f}%")
    console.print(table)


def _resolve_profile(actor_id: str, learners: List[LearnerProfile], persona: Optional[str]) -> LearnerProfile:
    profile = next((learner for learner in learners if learner.actor_id == actor_id), None)
    if profile is None:
        if learners and persona is None:
            console.print(f"[red]Learner {actor_id} not found in learner profiles[/red]")
            raise typer.Exit(code=1)
        profile = LearnerProfile(id=actor_id, actor_id=actor_id)
    if persona is not None:
        profile = LearnerProfile(id=profile.id, actor_id=profile.actor_id, persona_type=persona)
    return profile


def _percent(metric) -> str:
    if not metric.has_data:
        return metric.display()
    return f"{metric.value * 100:.1f}%"


def main() -> None:
    app()


if __name__ == "__main__":
    main()
