"""
Shared fixtures for the AB Loop Player tests.

FakeEngine stands in for the pygame engine. Media "bytes" are just the
track duration as text, optionally followed by a decode delay:

    b"30"        -> 30 second track
    b"30@0.2"    -> 30 second track, decode takes 0.2s
    b"garbage"   -> DecodeError
"""

import time
import threading

import pytest

from backend.errors import DecodeError


class FakeHandle:
    def __init__(self, duration, tag):
        self.duration = duration
        self.tag = tag
        self.rate = 1.0
        self.loop = (False, 0.0, 0.0)
        self.position = 0.0
        self.playing = False
        self.released = False


class FakeEngine:
    """Records every call; position only moves when a test sets it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.decoded = []
        self.released = []
        self.shut_down = False

    def decode(self, data):
        text = data.decode("ascii", errors="replace") if data else ""
        duration, _, delay = text.partition("@")
        try:
            duration = float(duration)
        except ValueError:
            raise DecodeError(f"not audio: {text!r}")
        if delay:
            time.sleep(float(delay))
        handle = FakeHandle(duration, text)
        with self.lock:
            self.decoded.append(handle)
        return handle

    def duration(self, handle):
        return handle.duration

    def start(self, handle):
        if handle.loop[0] and not (handle.loop[1] <= handle.position < handle.loop[2]):
            handle.position = handle.loop[1]
        handle.playing = True

    def stop(self, handle):
        handle.playing = False

    def seek(self, handle, position):
        handle.position = position

    def now(self, handle):
        return handle.position

    def is_active(self, handle):
        if not handle.playing:
            return False
        return handle.loop[0] or handle.position < handle.duration

    def set_rate(self, handle, rate):
        handle.rate = rate

    def set_loop(self, handle, enabled, start, end):
        if enabled and not (0.0 <= start < end <= handle.duration):
            enabled = False
        handle.loop = (enabled, start, end) if enabled else (False, 0.0, 0.0)

    def release(self, handle):
        handle.released = True
        handle.playing = False
        self.released.append(handle)

    def shutdown(self):
        self.shut_down = True


@pytest.fixture
def engine():
    return FakeEngine()
