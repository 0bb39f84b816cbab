"""
Tempo quantization for AB Loop Player.

Snaps the loop length to a whole number of beats so a loop set by ear
lines up with the music. The start point never moves; only the end point
is recomputed.
"""

import math
import logging
from typing import Optional

from config import MIN_BPM, MAX_BPM
from .loop_window import LoopWindow, set_points

logger = logging.getLogger("ABLoop.Quantizer")

# Absorbs float noise in length / beat ratios (e.g. 2.4999999999 beats)
_EPSILON = 1e-9


def is_valid_bpm(bpm) -> bool:
    """BPM must be a whole number in MIN_BPM..MAX_BPM (bools excluded)."""
    return isinstance(bpm, int) and not isinstance(bpm, bool) and MIN_BPM <= bpm <= MAX_BPM


def parse_bpm(text: str) -> Optional[int]:
    """
    Parse the BPM entry field.

    Returns:
        The tempo as an int, or None if the text is not a whole number in range
    """
    if text is None:
        return None
    try:
        bpm = int(text.strip())
    except ValueError:
        return None
    return bpm if is_valid_bpm(bpm) else None


def beat_duration(bpm: int) -> float:
    """Length of one beat in seconds."""
    return 60.0 / bpm


def quantize(window: Optional[LoopWindow], bpm: Optional[int],
             duration: float) -> Optional[LoopWindow]:
    """
    Snap the loop length to the nearest whole number of beats.

    Rounds half up with a minimum of one beat. If the snapped end would run
    past the track, the length drops to the largest beat multiple that fits.

    Args:
        window: Current loop window (no-op if None)
        bpm: Tempo (no-op if None)
        duration: Track duration in seconds

    Returns:
        The quantized window, or None if there is nothing to do or no beat fits
    """
    if window is None or bpm is None or not is_valid_bpm(bpm):
        return None

    beat = beat_duration(bpm)
    beats = max(1, int(math.floor(window.length / beat + 0.5 + _EPSILON)))

    if window.start + beats * beat > duration:
        beats = int(math.floor((duration - window.start) / beat + _EPSILON))
        if beats < 1:
            logger.debug(f"Quantize rejected: no full beat ({beat:.3f}s) fits after {window.start:.3f}s")
            return None

    end = min(window.start + beats * beat, duration)
    logger.debug(f"Quantize {window.length:.3f}s -> {beats} beats @ {bpm} BPM")
    return set_points(window.start, end, duration)


class QuantizationSettings:
    """
    BPM and the auto-quantize flag.

    Attributes:
        bpm: Tempo, or None when not set
        enabled: Auto-quantize; can only be on while a BPM is set
    """

    def __init__(self, bpm: Optional[int] = None, enabled: bool = False):
        self.bpm: Optional[int] = bpm if is_valid_bpm(bpm) else None
        self.enabled: bool = bool(enabled) and self.bpm is not None

    def set_bpm(self, bpm: Optional[int]) -> bool:
        """
        Set or clear the tempo.

        Clearing the tempo also switches auto-quantize off.

        Returns:
            True if accepted, False if bpm is out of range
        """
        if bpm is None:
            self.bpm = None
            self.enabled = False
            return True
        if not is_valid_bpm(bpm):
            return False
        self.bpm = bpm
        return True

    def set_enabled(self, enabled: bool) -> bool:
        """Turn auto-quantize on/off. Turning it on without a BPM is a no-op."""
        if enabled and self.bpm is None:
            return False
        self.enabled = bool(enabled)
        return True

    def to_dict(self):
        return {'bpm': self.bpm, 'enabled': self.enabled}

    def __repr__(self):
        return f"QuantizationSettings(bpm={self.bpm!r}, enabled={self.enabled!r})"
