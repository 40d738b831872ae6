# ABOUTME: Decodes compact xAPI elapsed-time strings into whole minutes.
# ABOUTME: Unparseable or missing durations fall back to a normal short session.

from __future__ import annotations

import math
import re
from typing import Optional

DEFAULT_DURATION_MINUTES = 15

# A leading day component is tolerated but not counted.
_DURATION_PATTERN = re.compile(r"P(?:\d+D)?T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)(?:\.\d+)?S)?")


def parse_duration(text: Optional[str]) -> int:
    """
    Convert an elapsed-time string such as ``PT1H30M15S`` into minutes.

    Seconds are rounded up to the next minute. Absent, empty or non-matching
    input returns ``DEFAULT_DURATION_MINUTES``.
    """

    if not text or not isinstance(text, str):
        return DEFAULT_DURATION_MINUTES

    match = _DURATION_PATTERN.fullmatch(text.strip().upper())
    if match is None:
        return DEFAULT_DURATION_MINUTES

    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return hours * 60 + minutes + math.ceil(seconds / 60)


def format_minutes(minutes: float) -> str:
    total = max(0, int(round(minutes)))
    hours, rest = divmod(total, 60)
    if hours:
        return f"PT{hours}H{rest}M"
    return f"PT{rest}M"
