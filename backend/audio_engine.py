"""
Audio Engine for AB Loop Player.

Implements the capability set the playback clock drives:

    decode(bytes) -> AudioHandle      duration(handle)
    start(handle) / stop(handle)      set_rate(handle, rate)
    set_loop(handle, on, start, end)  seek(handle, position)
    now(handle)                       is_active(handle)
    release(handle)                   shutdown()

Media is decoded once into a numpy array (via pygame.sndarray). Every
start builds a pygame.mixer.Sound from a slice of that array:

- Plain playback: the slice from the current position to the end, played once.
- Loop playback: the loop body rotated so it begins at the current position,
  played with loops=-1. Rotating keeps the seam at loop_end -> loop_start,
  and SDL repeats it without Python in the timing path.

Rate changes resample the slice with numpy linear interpolation (pitch
follows rate, like a tape machine). Position is derived from a
perf_counter timestamp taken when the sound started.

This module has NO UI dependencies and can be tested independently.
"""

import io
import time
import logging
import threading
from typing import Optional

import numpy as np
import pygame

from config import SAMPLE_RATE, CHANNELS, MIXER_BUFFER_SIZE, LOOP_FADE_MS
from .errors import DecodeError

logger = logging.getLogger("ABLoop.AudioEngine")


class AudioHandle:
    """
    One decoded track and its playback parameters.

    Owned by whoever called decode(); must be passed back to release().
    """

    def __init__(self, samples: np.ndarray, sample_rate: int):
        self.samples = samples            # (frames,) or (frames, channels)
        self.sample_rate = sample_rate
        self.duration = len(samples) / float(sample_rate)

        self.rate = 1.0
        self.loop_enabled = False
        self.loop_start = 0.0
        self.loop_end = 0.0

        # Track position (seconds) the current/next sound starts from
        self.offset = 0.0
        self.started_at = 0.0             # perf_counter() when the sound started
        self.playing = False
        self.released = False

        self.sound = None
        self.channel = None

    @property
    def loop_length(self) -> float:
        return self.loop_end - self.loop_start

    def __repr__(self):
        return (f"AudioHandle(duration={self.duration:.3f}s, rate={self.rate}, "
                f"loop={self.loop_enabled}, playing={self.playing})")


class AudioEngine:
    """
    pygame.mixer backed audio engine.

    Usage:
        engine = AudioEngine()
        handle = engine.decode(open("song.wav", "rb").read())
        engine.set_loop(handle, True, 10.0, 12.0)
        engine.start(handle)
        ...
        engine.now(handle)      # current position in seconds
        engine.release(handle)
    """

    def __init__(self, sample_rate=SAMPLE_RATE, channels=CHANNELS, buffer=MIXER_BUFFER_SIZE):
        if not pygame.mixer.get_init():
            pygame.mixer.init(
                frequency=sample_rate,
                size=-16,
                channels=channels,
                buffer=buffer
            )

        # The mixer may already have been opened with other settings
        self.sample_rate, _size, self.channels = pygame.mixer.get_init()

        # decode() runs on a worker thread; everything else on the session loop
        self.lock = threading.RLock()

        logger.info(f"AudioEngine initialized ({self.sample_rate} Hz, {self.channels} ch)")

    # =========================================================================
    # DECODING
    # =========================================================================

    def decode(self, data: bytes) -> AudioHandle:
        """
        Decode media bytes into a playable handle.

        Raises:
            DecodeError: if SDL_mixer cannot read the data or it is empty
        """
        logger.info(f"=== DECODING {len(data or b'')} bytes ===")
        if not data:
            raise DecodeError("No media data")

        try:
            sound = pygame.mixer.Sound(file=io.BytesIO(data))
            samples = pygame.sndarray.array(sound)
        except (pygame.error, ValueError, TypeError) as e:
            raise DecodeError(f"Could not decode audio: {e}") from e

        if len(samples) == 0:
            raise DecodeError("Decoded audio is empty")

        handle = AudioHandle(samples, self.sample_rate)
        logger.info(f"Decoded {len(samples)} frames ({handle.duration:.2f}s)")
        return handle

    def duration(self, handle: AudioHandle) -> float:
        return handle.duration

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def start(self, handle: AudioHandle) -> None:
        """Start playback from the handle's current offset."""
        with self.lock:
            if handle.released or handle.playing:
                return

            if handle.loop_enabled:
                # Loop playback always runs inside the window
                if not (handle.loop_start <= handle.offset < handle.loop_end):
                    handle.offset = handle.loop_start
            elif handle.offset >= handle.duration:
                handle.offset = 0.0

            sound, loops = self._render(handle)
            handle.sound = sound
            handle.channel = sound.play(loops=loops, fade_ms=LOOP_FADE_MS)
            if handle.channel is None:
                logger.warning("No free mixer channel, playback may be silent")

            handle.started_at = time.perf_counter()
            handle.playing = True
            logger.info(f"[PLAY] from {handle.offset:.3f}s (rate={handle.rate}, loop={handle.loop_enabled})")

    def stop(self, handle: AudioHandle) -> None:
        """Stop playback and remember the position for the next start."""
        with self.lock:
            if not handle.playing:
                return
            handle.offset = self.now(handle)
            self._stop_channel(handle)
            logger.info(f"[STOP] at {handle.offset:.3f}s")

    def seek(self, handle: AudioHandle, position: float) -> None:
        """Jump to position (seconds); keeps playing if it was playing."""
        with self.lock:
            position = max(0.0, min(position, handle.duration))
            was_playing = handle.playing
            self._stop_channel(handle)
            handle.offset = position
            if was_playing:
                self.start(handle)

    def now(self, handle: AudioHandle) -> float:
        """Current playback position in seconds."""
        with self.lock:
            if not handle.playing:
                return handle.offset

            elapsed = (time.perf_counter() - handle.started_at) * handle.rate
            position = handle.offset + elapsed

            if handle.loop_enabled and handle.loop_length > 0:
                return handle.loop_start + (position - handle.loop_start) % handle.loop_length
            return min(position, handle.duration)

    def is_active(self, handle: AudioHandle) -> bool:
        """True while sound is coming out (False once a non-looped track ran out)."""
        with self.lock:
            if not handle.playing:
                return False
            if handle.loop_enabled:
                return True
            if handle.channel is not None:
                return handle.channel.get_busy()
            return self.now(handle) < handle.duration

    # =========================================================================
    # RATE / LOOP CONFIGURATION
    # =========================================================================

    def set_rate(self, handle: AudioHandle, rate: float) -> None:
        with self.lock:
            if rate == handle.rate:
                return
            self._reconfigure(handle, rate=rate)
            logger.debug(f"Rate set to {rate}")

    def set_loop(self, handle: AudioHandle, enabled: bool, start: float, end: float) -> None:
        """
        Configure engine-native looping.

        Bounds outside the track or inverted bounds disable looping.
        """
        with self.lock:
            if enabled and not (0.0 <= start < end <= handle.duration):
                logger.warning(f"Ignoring loop {start:.3f}-{end:.3f}s outside track, looping disabled")
                enabled = False
            if (enabled == handle.loop_enabled
                    and (not enabled or (start, end) == (handle.loop_start, handle.loop_end))):
                return
            self._reconfigure(handle, loop=(enabled, start, end))
            if enabled:
                logger.info(f"=== LOOP ON: IN={start:.3f}s OUT={end:.3f}s ===")
            else:
                logger.info("=== LOOP OFF ===")

    def _reconfigure(self, handle, rate=None, loop=None):
        """Apply new parameters, restarting the sound at the same position if playing."""
        was_playing = handle.playing
        if was_playing:
            handle.offset = self.now(handle)
            self._stop_channel(handle)

        if rate is not None:
            handle.rate = rate
        if loop is not None:
            handle.loop_enabled, handle.loop_start, handle.loop_end = loop

        if was_playing:
            self.start(handle)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def release(self, handle: AudioHandle) -> None:
        """Stop playback and drop the decoded audio."""
        with self.lock:
            if handle.released:
                return
            self._stop_channel(handle)
            handle.sound = None
            handle.samples = None
            handle.released = True
            logger.debug("Handle released")

    def shutdown(self) -> None:
        """Close the mixer. Call once, when the application exits."""
        logger.info("Shutting down audio mixer")
        pygame.mixer.quit()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _stop_channel(self, handle):
        if handle.channel is not None:
            handle.channel.stop()
        handle.channel = None
        handle.playing = False

    def _render(self, handle):
        """Build the Sound for the current offset. Returns (sound, loops)."""
        sr = handle.sample_rate
        frames = handle.samples
        pos = int(handle.offset * sr)

        body = frames[int(handle.loop_start * sr):int(handle.loop_end * sr)]
        if handle.loop_enabled and len(body) > 0:
            k = min(max(pos - int(handle.loop_start * sr), 0), len(body) - 1)
            segment = np.concatenate((body[k:], body[:k]))
            loops = -1
        else:
            # Never hand SDL an empty buffer
            segment = frames[min(pos, len(frames) - 1):]
            loops = 0

        if handle.rate != 1.0:
            segment = self._resample(segment, handle.rate)

        return pygame.sndarray.make_sound(np.ascontiguousarray(segment)), loops

    @staticmethod
    def _resample(segment: np.ndarray, rate: float) -> np.ndarray:
        """Linear-interpolation resample so the segment plays `rate` times faster."""
        n = len(segment)
        new_n = max(1, int(round(n / rate)))
        src = np.arange(n)
        idx = np.linspace(0, n - 1, new_n)

        if segment.ndim == 1:
            out = np.interp(idx, src, segment)
        else:
            out = np.empty((new_n, segment.shape[1]), dtype=np.float64)
            for ch in range(segment.shape[1]):
                out[:, ch] = np.interp(idx, src, segment[:, ch])

        info = np.iinfo(segment.dtype) if np.issubdtype(segment.dtype, np.integer) else None
        if info is not None:
            out = np.clip(np.round(out), info.min, info.max)
        return out.astype(segment.dtype)
