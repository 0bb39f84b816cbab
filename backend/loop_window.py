"""
Loop window model for AB Loop Player.

A LoopWindow is the (start, end) range the audio engine repeats while
looping. Windows are immutable values; every edit goes through one of the
functions below, which validate against the current track duration and
return either the new window or None when the edit is rejected. A rejected
edit means "keep the previous window".

Invariant for every window these functions return:
    0 <= start < end <= duration
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("ABLoop.LoopWindow")


@dataclass(frozen=True)
class LoopWindow:
    """A validated A-B loop range in seconds."""
    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start

    def contains(self, position: float) -> bool:
        return self.start <= position < self.end

    def to_dict(self):
        return {'start': self.start, 'end': self.end}

    @classmethod
    def from_dict(cls, data):
        return cls(float(data['start']), float(data['end']))


def is_valid(start: float, end: float, duration: float) -> bool:
    """Check the window invariant 0 <= start < end <= duration."""
    if not all(math.isfinite(v) for v in (start, end, duration)):
        return False
    return 0.0 <= start < end <= duration


def _accept(start, end, duration, op) -> Optional[LoopWindow]:
    if is_valid(start, end, duration):
        return LoopWindow(start, end)
    logger.debug(f"{op} rejected: start={start!r} end={end!r} duration={duration!r}")
    return None


def set_points(start: float, end: float, duration: float) -> Optional[LoopWindow]:
    """
    Replace both loop points.

    Returns:
        The new window, or None if (start, end) violates the invariant
    """
    return _accept(start, end, duration, "set_points")


def set_start_preserving_end(window: Optional[LoopWindow], candidate_start: float,
                             duration: float) -> Optional[LoopWindow]:
    """Move the A point, keeping B. Requires an existing window."""
    if window is None:
        return None
    return _accept(candidate_start, window.end, duration, "set_start")


def set_end_preserving_start(window: Optional[LoopWindow], candidate_end: float,
                             duration: float) -> Optional[LoopWindow]:
    """Move the B point, keeping A. Requires an existing window."""
    if window is None:
        return None
    return _accept(window.start, candidate_end, duration, "set_end")


def move_window(window: Optional[LoopWindow], direction: int,
                duration: float) -> Optional[LoopWindow]:
    """
    Shift the window one full length backwards (-1) or forwards (+1).

    The shifted window is translated back inside [0, duration] when it
    overshoots, so its length never changes.

    Args:
        window: Current window (no-op if None)
        direction: -1 or +1
        duration: Track duration in seconds

    Returns:
        The moved window, or None if rejected
    """
    if window is None or direction not in (-1, 1):
        return None

    length = window.length
    start = window.start + direction * length
    end = start + length

    if start < 0:
        start, end = 0.0, length
    if end > duration:
        start, end = duration - length, duration

    return _accept(start, end, duration, "move_window")


def scale_length(window: Optional[LoopWindow], factor: float,
                 duration: float) -> Optional[LoopWindow]:
    """
    Multiply the loop length by factor, keeping the start fixed.

    The end is clamped to the track duration. Rejected if factor is not
    positive or the clamped length collapses to zero.
    """
    if window is None or not math.isfinite(factor) or factor <= 0:
        return None
    end = min(window.start + window.length * factor, duration)
    return _accept(window.start, end, duration, "scale_length")


def extend_start(window: Optional[LoopWindow], delta: float,
                 duration: float) -> Optional[LoopWindow]:
    """Shift the A point by a signed delta."""
    if window is None:
        return None
    return _accept(window.start + delta, window.end, duration, "extend_start")


def extend_end(window: Optional[LoopWindow], delta: float,
               duration: float) -> Optional[LoopWindow]:
    """Shift the B point by a signed delta."""
    if window is None:
        return None
    return _accept(window.start, window.end + delta, duration, "extend_end")


def clamp(window: Optional[LoopWindow], duration: float) -> Optional[LoopWindow]:
    """
    Fit a stored window (bookmark, shared link) into [0, duration].

    Returns:
        The intersected window, or None if nothing of it lies inside the track
    """
    if window is None:
        return None
    return _accept(max(0.0, window.start), min(window.end, duration), duration, "clamp")
