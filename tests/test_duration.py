# ABOUTME: Tests decoding of xAPI elapsed-time strings into minutes.
# ABOUTME: Covers rounding of seconds and the 15 minute fallback.

from xapi_analytics.duration import DEFAULT_DURATION_MINUTES, format_minutes, parse_duration


def test_parse_duration_rounds_seconds_up():
    assert parse_duration("PT1H30M15S") == 91


def test_parse_duration_partial_components():
    assert parse_duration("PT45M") == 45
    assert parse_duration("PT2H") == 120
    assert parse_duration("PT59S") == 1
    assert parse_duration("pt10m") == 10


def test_parse_duration_ignores_day_component():
    assert parse_duration("P1DT20M") == 20


def test_parse_duration_falls_back_to_default():
    assert DEFAULT_DURATION_MINUTES == 15
    assert parse_duration("garbage") == 15
    assert parse_duration(None) == 15
    assert parse_duration("") == 15
    assert parse_duration("30M") == 15


def test_format_minutes():
    assert format_minutes(91) == "PT1H31M"
    assert format_minutes(45) == "PT45M"
    assert format_minutes(-3) == "PT0M"
