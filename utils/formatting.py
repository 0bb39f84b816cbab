"""
Formatting utilities for AB Loop Player.

Converts between seconds and the MM:SS.mmm strings shown in the loop
entry fields and the transport time display.
"""

import math
import re
from typing import Optional

# Tried in this order, first match wins
_MMSS_FRACTION = re.compile(r"^(\d+):(\d+)\.(\d+)$")
_MMSS = re.compile(r"^(\d+):(\d+)$")
_SECONDS = re.compile(r"^(\d+)\.?(\d*)$")


def _fraction(digits: str) -> float:
    """'5' -> 0.5, '05' -> 0.05, '' -> 0.0"""
    if not digits:
        return 0.0
    return int(digits) / (10 ** len(digits))


def format_time(seconds: float) -> str:
    """
    Format seconds as a fixed-width time string.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted string like "01:05.500"
    """
    if seconds is None or not math.isfinite(seconds):
        return "--:--.---"
    if seconds < 0:
        seconds = 0

    # Round once to whole milliseconds so 59.9996 carries into the minute
    total_ms = int(round(seconds * 1000))
    minutes, rem_ms = divmod(total_ms, 60000)
    secs, ms = divmod(rem_ms, 1000)
    return f"{minutes:02d}:{secs:02d}.{ms:03d}"


def parse_time(text: str) -> Optional[float]:
    """
    Parse a time string to seconds.

    Accepts formats:
    - "1:05.5" (MM:SS.fff, any number of fraction digits)
    - "1:05" (MM:SS)
    - "65.5" / "65" (just seconds)

    Args:
        text: Time string to parse

    Returns:
        Time in seconds, or None if the text is not one of the forms above
    """
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None

    match = _MMSS_FRACTION.match(text)
    if match:
        minutes, seconds, digits = match.groups()
        return int(minutes) * 60 + int(seconds) + _fraction(digits)

    match = _MMSS.match(text)
    if match:
        minutes, seconds = match.groups()
        return int(minutes) * 60 + int(seconds)

    match = _SECONDS.match(text)
    if match:
        seconds, digits = match.groups()
        return int(seconds) + _fraction(digits)

    return None


def format_duration(seconds: float) -> str:
    """
    Format a duration for display.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "2.980s" or "1m 23.4s"
    """
    if seconds < 60:
        return f"{seconds:.3f}s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"
