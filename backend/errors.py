"""
Exceptions raised by the AB Loop Player backend.

Only media loading surfaces errors to callers. Malformed time text and
out-of-range loop edits are reported through None / False return values
instead, and the previous valid state stays in place.
"""


class LoopPlayerError(Exception):
    """Base class for all backend errors."""


class DecodeError(LoopPlayerError):
    """The audio engine could not decode the supplied media bytes."""


class LoadError(LoopPlayerError):
    """A load request failed; the clock is back in the EMPTY state."""
