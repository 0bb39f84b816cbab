"""
Backend module for AB Loop Player.

Contains the loop window rules, tempo quantization, the playback clock,
the pygame audio engine and the session controller.
These modules are UI-agnostic and can be used independently for testing.
"""

from .errors import LoopPlayerError, DecodeError, LoadError
from .loop_window import LoopWindow
from .quantizer import QuantizationSettings
from .playback_clock import PlaybackClock, ClockState, PlaybackState, Track, TimeSubscription
from .session import Session, LoopBookmark

__all__ = [
    'LoopPlayerError',
    'DecodeError',
    'LoadError',
    'LoopWindow',
    'QuantizationSettings',
    'PlaybackClock',
    'ClockState',
    'PlaybackState',
    'Track',
    'TimeSubscription',
    'Session',
    'LoopBookmark',
]
