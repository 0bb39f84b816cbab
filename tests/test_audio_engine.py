"""
Tests for the pygame audio engine.

Runs against SDL's dummy audio driver so no sound card is needed. Skipped
when pygame cannot open a mixer at all.
"""

import io
import os
import wave

os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import numpy as np
import pygame
import pytest

from backend.audio_engine import AudioEngine
from backend.errors import DecodeError


def make_wav(seconds=1.0, sample_rate=44100):
    """A stereo 440 Hz sine as 16-bit WAV bytes."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    mono = (np.sin(2 * np.pi * 440 * t) * 8000).astype(np.int16)
    frames = np.column_stack((mono, mono))

    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(2)
        w.setsampwidth(2)
        w.setframerate(sample_rate)
        w.writeframes(frames.tobytes())
    return buf.getvalue()


@pytest.fixture(scope="module")
def audio():
    try:
        engine = AudioEngine()
    except pygame.error as e:
        pytest.skip(f"No audio mixer available: {e}")
    yield engine
    engine.shutdown()


def test_decode_duration(audio):
    handle = audio.decode(make_wav(1.0))
    assert audio.duration(handle) == pytest.approx(1.0, abs=0.01)
    audio.release(handle)


def test_decode_rejects_garbage(audio):
    with pytest.raises(DecodeError):
        audio.decode(b"definitely not audio")
    with pytest.raises(DecodeError):
        audio.decode(b"")


def test_seek_while_stopped(audio):
    handle = audio.decode(make_wav(1.0))
    audio.seek(handle, 0.5)
    assert audio.now(handle) == 0.5
    audio.seek(handle, 5.0)
    assert audio.now(handle) == pytest.approx(handle.duration)
    audio.release(handle)


def test_invalid_loop_disables_looping(audio):
    handle = audio.decode(make_wav(1.0))
    audio.set_loop(handle, True, 0.2, 0.4)
    assert handle.loop_enabled

    audio.set_loop(handle, True, 0.4, 0.2)
    assert not handle.loop_enabled
    audio.set_loop(handle, True, 0.5, 3.0)
    assert not handle.loop_enabled
    audio.release(handle)


def test_loop_start_outside_window_jumps_to_loop_start(audio):
    handle = audio.decode(make_wav(1.0))
    audio.set_loop(handle, True, 0.2, 0.4)
    audio.seek(handle, 0.8)

    audio.start(handle)
    assert handle.playing
    assert 0.2 <= audio.now(handle) < 0.4
    assert audio.is_active(handle)

    audio.stop(handle)
    assert not handle.playing
    assert 0.2 <= handle.offset < 0.4
    audio.release(handle)


def test_rate_change_keeps_position(audio):
    handle = audio.decode(make_wav(1.0))
    audio.seek(handle, 0.3)
    audio.set_rate(handle, 2.0)
    assert handle.rate == 2.0
    assert audio.now(handle) == 0.3
    audio.release(handle)


def test_release_is_idempotent(audio):
    handle = audio.decode(make_wav(0.5))
    audio.start(handle)
    audio.release(handle)
    audio.release(handle)
    assert handle.released
    assert not handle.playing
    assert handle.samples is None


def test_resample_length_and_dtype():
    segment = np.arange(200, dtype=np.int16).reshape(100, 2)
    faster = AudioEngine._resample(segment, 2.0)
    assert faster.shape == (50, 2)
    assert faster.dtype == np.int16

    slower = AudioEngine._resample(segment[:, 0], 0.5)
    assert slower.shape == (200,)
    assert slower[0] == 0
    assert slower[-1] == segment[-1, 0]
