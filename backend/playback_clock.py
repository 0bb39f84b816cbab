"""
Playback Clock for AB Loop Player.

Bridges a polled audio engine to observers of "current time". The engine
only answers "where are you now?"; the clock asks ~60 times a second and
pushes the answer to a single time callback.

State machine:

    EMPTY -> LOADING -> READY -> (PLAYING <-> PAUSED)
    READY / PLAYING / PAUSED -> LOADING      (new load)
    any -> DISPOSED

All methods must be called from the thread running the asyncio event loop.
load() is the only coroutine; it decodes on the default executor so the
loop keeps ticking. Overlapping loads resolve last-load-wins through a
generation counter: a load that finishes after a newer one started
releases its own handle and returns None.
"""

import math
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

from config import POLL_INTERVAL
from .errors import DecodeError, LoadError
from .loop_window import LoopWindow

logger = logging.getLogger("ABLoop.PlaybackClock")


class ClockState(Enum):
    """Playback clock lifecycle."""
    EMPTY = auto()
    LOADING = auto()
    READY = auto()
    PLAYING = auto()
    PAUSED = auto()
    DISPOSED = auto()


# States in which a decoded track is attached
_LOADED_STATES = (ClockState.READY, ClockState.PLAYING, ClockState.PAUSED)


@dataclass(frozen=True)
class Track:
    """The media currently loaded. Replaced wholesale on every load."""
    duration: float
    name: str = ""


@dataclass
class PlaybackState:
    """
    Observable playback values, shared by reference between the session
    and the clock. Only the clock writes current_time.
    """
    is_playing: bool = False
    playback_rate: float = 1.0
    current_time: float = 0.0


class TimeSubscription:
    """Handle returned by PlaybackClock.on_time(); cancel() stops the updates."""

    def __init__(self, clock: "PlaybackClock", callback: Callable[[float], None]):
        self._clock = clock
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._clock._subscription is self

    def cancel(self) -> None:
        if self.active:
            self._clock._subscription = None


class PlaybackClock:
    """
    Owns the engine handle for the current track and publishes its position.

    Usage:
        clock = PlaybackClock(AudioEngine())
        sub = clock.on_time(lambda t: print(t))
        await clock.load(data)
        clock.play()
        ...
        sub.cancel()
        clock.dispose()
    """

    def __init__(self, engine, playback: Optional[PlaybackState] = None,
                 poll_interval: float = POLL_INTERVAL,
                 on_state_change: Optional[Callable[[ClockState], None]] = None):
        """
        Args:
            engine: Audio engine implementing the decode/start/stop/... capability set
            playback: Shared playback struct (a new one is created if omitted)
            poll_interval: Seconds between position samples
            on_state_change: Called with the new ClockState on every transition
        """
        self.engine = engine
        self.playback = playback if playback is not None else PlaybackState()
        self.poll_interval = poll_interval
        self.on_state_change = on_state_change

        self.track: Optional[Track] = None
        self._handle = None
        self._state = ClockState.EMPTY
        self._loop_window: Optional[LoopWindow] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._subscription: Optional[TimeSubscription] = None

        # Incremented by every load() and by dispose(); stale loads bail
        self._load_generation = 0

        logger.info("PlaybackClock initialized")

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ClockState:
        return self._state

    @property
    def duration(self) -> float:
        return self.track.duration if self.track else 0.0

    @property
    def is_loaded(self) -> bool:
        return self._state in _LOADED_STATES

    def _set_state(self, state: ClockState) -> None:
        if state is self._state:
            return
        logger.debug(f"Clock {self._state.name} -> {state.name}")
        self._state = state
        self.playback.is_playing = state is ClockState.PLAYING
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.error(f"Error in state change listener: {e}")

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self, data: bytes, name: str = "") -> Optional[Track]:
        """
        Decode media and attach it as the current track.

        Returns:
            The new Track, or None if a newer load() or dispose() superseded this one

        Raises:
            LoadError: decoding failed (state reverts to EMPTY) or the clock is disposed
        """
        if self._state is ClockState.DISPOSED:
            raise LoadError("Playback clock has been disposed")

        self._load_generation += 1
        gen = self._load_generation
        logger.info(f"=== LOAD #{gen}: {name or '<unnamed>'} ===")

        self._cancel_polling()
        self._release_handle()
        self.track = None
        self.playback.current_time = 0.0
        self._set_state(ClockState.LOADING)

        loop = asyncio.get_running_loop()
        try:
            handle = await loop.run_in_executor(None, self.engine.decode, data)
        except DecodeError as e:
            if gen != self._load_generation:
                logger.info(f"Load #{gen} failed after being superseded, ignoring: {e}")
                return None
            logger.error(f"Load #{gen} failed: {e}")
            self._set_state(ClockState.EMPTY)
            raise LoadError(f"Could not load {name or 'media'}: {e}") from e
        except BaseException as e:
            # Engine crash or cancelled load: never leave the clock in LOADING
            if gen == self._load_generation and self._state is ClockState.LOADING:
                logger.error(f"Load #{gen} aborted: {e!r}")
                self._set_state(ClockState.EMPTY)
            raise

        if gen != self._load_generation:
            logger.debug(f"Load #{gen} superseded by #{self._load_generation}, discarding")
            self.engine.release(handle)
            return None

        self._handle = handle
        self.track = Track(duration=float(self.engine.duration(handle)), name=name)

        # Settings made before/while loading carry over to the new track
        self.engine.set_rate(handle, self.playback.playback_rate)
        self._apply_loop()

        self._set_state(ClockState.READY)
        self._start_polling()
        logger.info(f"Load #{gen} ready: {self.track.duration:.2f}s")
        return self.track

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def play(self) -> bool:
        """Start playback. No-op if already playing or nothing is loaded."""
        if self._state not in (ClockState.READY, ClockState.PAUSED):
            if self._state is not ClockState.PLAYING:
                logger.warning(f"Play ignored: no media loaded (state={self._state.name})")
            return False
        self.engine.start(self._handle)
        self._set_state(ClockState.PLAYING)
        return True

    def pause(self) -> bool:
        """Pause playback. Only valid while playing."""
        if self._state is not ClockState.PLAYING:
            return False
        self.engine.stop(self._handle)
        self._set_state(ClockState.PAUSED)
        self._publish(self.engine.now(self._handle))
        return True

    def seek(self, position: float) -> bool:
        """Jump to position (clamped to the track) and publish it immediately."""
        if not self.is_loaded or not math.isfinite(position):
            return False
        position = max(0.0, min(position, self.duration))
        self.engine.seek(self._handle, position)
        self._publish(position)
        return True

    def set_playback_rate(self, rate: float) -> bool:
        """
        Store the playback rate and forward it to the engine.

        Returns:
            False (nothing changes) if rate is not a positive finite number
        """
        if not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            logger.debug(f"Rejected playback rate {rate!r}")
            return False
        self.playback.playback_rate = float(rate)
        if self._handle is not None:
            self.engine.set_rate(self._handle, float(rate))
        return True

    def set_loop_points(self, window: Optional[LoopWindow]) -> None:
        """Enable engine-native looping over window, or disable it with None."""
        self._loop_window = window
        self._apply_loop()

    def _apply_loop(self):
        if self._handle is None:
            return
        window = self._loop_window
        if window is not None and window.end <= self.duration:
            self.engine.set_loop(self._handle, True, window.start, window.end)
        else:
            self.engine.set_loop(self._handle, False, 0.0, 0.0)

    # =========================================================================
    # TIME UPDATES
    # =========================================================================

    def on_time(self, callback: Callable[[float], None]) -> TimeSubscription:
        """
        Register the time callback, replacing any previous one.

        Returns:
            A subscription whose cancel() stops further updates
        """
        self._subscription = TimeSubscription(self, callback)
        return self._subscription

    def _start_polling(self):
        self._cancel_polling()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    def _cancel_polling(self):
        # A cancelled task never runs another tick: it only resumes at its
        # next await, which raises CancelledError.
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll(self):
        logger.debug("Polling started")
        try:
            while True:
                self._tick()
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug("Polling cancelled")
            raise

    def _tick(self):
        if self._handle is None:
            return

        if self._state is ClockState.PLAYING and not self.engine.is_active(self._handle):
            logger.info("Track ended")
            self.engine.stop(self._handle)
            self._set_state(ClockState.PAUSED)

        self._publish(self.engine.now(self._handle))

    def _publish(self, position: float):
        position = max(0.0, min(position, self.duration))
        self.playback.current_time = position

        subscription = self._subscription
        if subscription is None:
            return
        try:
            subscription.callback(position)
        except Exception as e:
            logger.error(f"Error in time callback: {e}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _release_handle(self):
        if self._handle is not None:
            self.engine.release(self._handle)
            self._handle = None

    def dispose(self) -> None:
        """Stop polling, release the engine handle. Safe to call repeatedly."""
        if self._state is ClockState.DISPOSED:
            return
        logger.info("Disposing playback clock")
        self._load_generation += 1
        self._cancel_polling()
        self._release_handle()
        self._subscription = None
        self.track = None
        self._set_state(ClockState.DISPOSED)
