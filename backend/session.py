"""
Session controller for AB Loop Player.

Acts as the controller layer between the UI and the playback clock.
Owns the loop window, tempo settings, playback values, bookmarks and the
looping flag for one listening session, and emits events when they change.

This follows an event-driven architecture:
- UI registers callbacks for events it cares about
- Session emits events when state changes
- UI updates in response to events

Loop edits never raise. Every mutator returns True when the edit was
applied and False when it was rejected, in which case the previous
window is still in place. The UI decides whether to show feedback.
"""

import time
import uuid
import logging
from typing import Callable, Dict, List, Optional

from config import SEEK_STEP_SECONDS
from utils.formatting import parse_time
from utils.share_link import generate_share_link, parse_share_link
from . import loop_window as lw
from .errors import LoadError
from .loop_window import LoopWindow
from .playback_clock import PlaybackClock, PlaybackState, ClockState, TimeSubscription
from .quantizer import QuantizationSettings, quantize, parse_bpm

logger = logging.getLogger("ABLoop.Session")


class LoopBookmark:
    """
    A named, saved loop window.

    Attributes:
        id: Unique identifier
        name: Human-readable name (e.g., "Solo - bars 17-24")
        start: Start time in seconds
        end: End time in seconds
        playback_rate: Rate to restore with the loop (None = leave as is)
        annotation: Free-form practice notes
        created_at: Unix timestamp
    """
    def __init__(self, start, end, name=None, playback_rate=None, annotation=""):
        self.id = str(uuid.uuid4())
        self.start = start
        self.end = end
        self.name = name or "Loop"
        self.playback_rate = playback_rate
        self.annotation = annotation
        self.created_at = time.time()

    @property
    def window(self) -> LoopWindow:
        return LoopWindow(self.start, self.end)

    def to_dict(self):
        """Serialize for export / share links."""
        return {
            'id': self.id,
            'name': self.name,
            'start': self.start,
            'end': self.end,
            'playback_rate': self.playback_rate,
            'annotation': self.annotation,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data):
        """Deserialize; missing optional fields fall back to defaults."""
        bookmark = cls(
            float(data['start']), float(data['end']),
            name=data.get('name'),
            playback_rate=data.get('playback_rate'),
            annotation=data.get('annotation') or "",
        )
        bookmark.id = data.get('id') or bookmark.id
        bookmark.created_at = data.get('created_at', bookmark.created_at)
        return bookmark

    def __repr__(self):
        return f"LoopBookmark({self.name!r}, {self.start:.3f}-{self.end:.3f})"


class Session:
    """
    Manages session state and coordinates between UI and playback clock.

    Responsibilities:
    - Owns the PlaybackClock (and through it the engine handle)
    - Owns loop window, quantization settings, playback values, bookmarks
    - Wires the loop window into the engine while looping is on
    - Emits callbacks for UI updates

    Event System:
    - Register callbacks with: session.on('event_name', callback_function)

    Available Events:
    - 'state_change': (state: ClockState)
    - 'song_loaded': (name: str, duration: float)
    - 'load_failed': (message: str)
    - 'loop_points_changed': (window: Optional[LoopWindow])
    - 'looping_changed': (is_looping: bool)
    - 'quantization_changed': (settings: QuantizationSettings)
    - 'rate_changed': (rate: float)
    - 'bookmarks_changed': (bookmarks: list)
    """

    def __init__(self, engine):
        """
        Args:
            engine: Audio engine handed to the PlaybackClock
        """
        self.playback = PlaybackState()
        self.clock = PlaybackClock(engine, playback=self.playback,
                                   on_state_change=self._on_clock_state)

        self.window: Optional[LoopWindow] = None
        self.quantization = QuantizationSettings()
        self.is_looping: bool = False
        self.bookmarks: List[LoopBookmark] = []
        self.selected_bookmark_id: Optional[str] = None
        self.song_name: str = ""

        self._callbacks: Dict[str, List[Callable]] = {
            'state_change': [],          # (ClockState)
            'song_loaded': [],           # (name, duration)
            'load_failed': [],           # (message)
            'loop_points_changed': [],   # (Optional[LoopWindow])
            'looping_changed': [],       # (bool)
            'quantization_changed': [],  # (QuantizationSettings)
            'rate_changed': [],          # (rate)
            'bookmarks_changed': [],     # (bookmarks list)
        }

        logger.info("Session initialized")

    # =========================================================================
    # EVENT SYSTEM
    # =========================================================================

    def on(self, event: str, callback: Callable) -> None:
        """
        Register a callback for an event.

        Args:
            event: Event name (see class docstring for available events)
            callback: Function to call when event occurs
        """
        if event in self._callbacks:
            self._callbacks[event].append(callback)
        else:
            logger.warning(f"Unknown event: {event}. Available: {list(self._callbacks.keys())}")

    def off(self, event: str, callback: Callable) -> None:
        """Unregister a callback for an event."""
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)

    def _emit(self, event: str, *args) -> None:
        """Emit an event to all registered callbacks."""
        for callback in self._callbacks.get(event, []):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in callback for {event}: {e}")

    def _on_clock_state(self, state: ClockState) -> None:
        self._emit('state_change', state)

    # =========================================================================
    # OBSERVABLE STATE
    # =========================================================================

    @property
    def duration(self) -> float:
        return self.clock.duration

    @property
    def state(self) -> ClockState:
        return self.clock.state

    @property
    def current_time(self) -> float:
        return self.playback.current_time

    def snapshot(self) -> dict:
        """Everything the UI needs to redraw from scratch."""
        return {
            'window': self.window,
            'quantization': self.quantization.to_dict(),
            'playback': {
                'is_playing': self.playback.is_playing,
                'playback_rate': self.playback.playback_rate,
                'current_time': self.playback.current_time,
            },
            'looping': self.is_looping,
            'state': self.clock.state,
            'duration': self.duration,
        }

    def on_time(self, callback: Callable[[float], None]) -> TimeSubscription:
        """Subscribe to ~60 Hz position updates (replaces any previous subscriber)."""
        return self.clock.on_time(callback)

    # =========================================================================
    # SONG LOADING
    # =========================================================================

    async def load(self, data: bytes, name: str = "") -> bool:
        """
        Load media bytes. Loop window and bookmarks belong to the previous
        track and are cleared.

        Returns:
            True when this load became the current track, False if superseded

        Raises:
            LoadError: the media could not be decoded
        """
        logger.info(f"=== UI: Loading song: {name or '<unnamed>'} ===")
        # The clock drops the current track as soon as loading starts
        self._clear_track_state()
        try:
            track = await self.clock.load(data, name=name)
        except LoadError as e:
            self._emit('load_failed', str(e))
            raise

        if track is None:
            return False

        self.song_name = name
        self._emit('song_loaded', name, track.duration)
        return True

    def _clear_track_state(self) -> None:
        """Forget the window, looping and bookmarks of the outgoing track."""
        self.song_name = ""
        self.set_looping(False)
        self._commit_window(None)
        self.bookmarks.clear()
        self.selected_bookmark_id = None
        self._emit('bookmarks_changed', self.bookmarks)

    # =========================================================================
    # PLAYBACK CONTROLS
    # =========================================================================

    def play(self) -> bool:
        return self.clock.play()

    def pause(self) -> bool:
        return self.clock.pause()

    def toggle_play_pause(self) -> bool:
        """Toggle between play and pause."""
        if self.clock.state is ClockState.PLAYING:
            return self.pause()
        return self.play()

    def set_playback_rate(self, rate: float) -> bool:
        if not self.clock.set_playback_rate(rate):
            return False
        self._emit('rate_changed', self.playback.playback_rate)
        return True

    def seek(self, position: float) -> bool:
        return self.clock.seek(position)

    def seek_forward(self, seconds: float = SEEK_STEP_SECONDS) -> bool:
        return self.seek(min(self.current_time + seconds, self.duration))

    def seek_backward(self, seconds: float = SEEK_STEP_SECONDS) -> bool:
        return self.seek(max(self.current_time - seconds, 0.0))

    # =========================================================================
    # LOOP CONTROLS
    # =========================================================================

    def _commit_window(self, window: Optional[LoopWindow]) -> None:
        """Store an accepted window and push it to the engine if looping."""
        self.window = window
        self._sync_clock_loop()
        self._emit('loop_points_changed', window)

    def _apply(self, window: Optional[LoopWindow], op: str) -> bool:
        if window is None:
            logger.debug(f"{op}: rejected, keeping {self.window}")
            return False
        self._commit_window(window)
        return True

    def set_loop_points(self, start: float, end: float) -> bool:
        """Set both loop points at once (slider commit, shared link)."""
        return self._apply(lw.set_points(start, end, self.duration), "set_loop_points")

    def set_loop_start(self, seconds: float) -> bool:
        return self._apply(lw.set_start_preserving_end(self.window, seconds, self.duration),
                           "set_loop_start")

    def set_loop_end(self, seconds: float) -> bool:
        return self._apply(lw.set_end_preserving_start(self.window, seconds, self.duration),
                           "set_loop_end")

    def set_loop_start_text(self, text: str) -> bool:
        """Loop start from the IN entry field; unparseable text changes nothing."""
        seconds = parse_time(text)
        if seconds is None:
            logger.debug(f"Unparseable loop start {text!r}")
            return False
        return self.set_loop_start(seconds)

    def set_loop_end_text(self, text: str) -> bool:
        """Loop end from the OUT entry field; unparseable text changes nothing."""
        seconds = parse_time(text)
        if seconds is None:
            logger.debug(f"Unparseable loop end {text!r}")
            return False
        return self.set_loop_end(seconds)

    def set_loop_start_at_current(self) -> bool:
        """A point at the playhead; the track end stands in for a missing B."""
        end = self.window.end if self.window else self.duration
        return self.set_loop_points(self.current_time, end)

    def set_loop_end_at_current(self) -> bool:
        """B point at the playhead; the track start stands in for a missing A."""
        start = self.window.start if self.window else 0.0
        return self.set_loop_points(start, self.current_time)

    def move_loop(self, direction: int) -> bool:
        return self._apply(lw.move_window(self.window, direction, self.duration), "move_loop")

    def scale_loop(self, factor: float) -> bool:
        return self._apply(lw.scale_length(self.window, factor, self.duration), "scale_loop")

    def extend_loop_start(self, delta: float) -> bool:
        return self._apply(lw.extend_start(self.window, delta, self.duration), "extend_loop_start")

    def extend_loop_end(self, delta: float) -> bool:
        return self._apply(lw.extend_end(self.window, delta, self.duration), "extend_loop_end")

    def clear_loop(self) -> None:
        """Forget the loop window and stop looping."""
        self._commit_window(None)
        self.set_looping(False)

    def set_looping(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if enabled == self.is_looping:
            return
        self.is_looping = enabled
        logger.info(f"UI: Looping {'ON' if enabled else 'OFF'}")
        self._sync_clock_loop()
        self._emit('looping_changed', enabled)

    def toggle_looping(self) -> None:
        self.set_looping(not self.is_looping)

    def _sync_clock_loop(self) -> None:
        self.clock.set_loop_points(self.window if self.is_looping else None)

    # =========================================================================
    # QUANTIZATION
    # =========================================================================

    def set_bpm(self, bpm: Optional[int]) -> bool:
        """
        Commit a new tempo. While auto-quantize is on, the current window is
        re-quantized to the new beat.
        """
        if not self.quantization.set_bpm(bpm):
            logger.debug(f"Rejected BPM {bpm!r}")
            return False
        logger.info(f"UI: BPM -> {bpm}")
        self._emit('quantization_changed', self.quantization)
        if self.quantization.enabled:
            self.quantize_now()
        return True

    def set_bpm_text(self, text: str) -> bool:
        """BPM from the entry field. Blank clears the tempo."""
        if text is None or not text.strip():
            return self.set_bpm(None)
        bpm = parse_bpm(text)
        if bpm is None:
            return False
        return self.set_bpm(bpm)

    def set_quantize_enabled(self, enabled: bool) -> bool:
        """Toggle auto-quantize; switching it on runs one quantize pass."""
        if not self.quantization.set_enabled(enabled):
            logger.debug("Auto-quantize needs a BPM first")
            return False
        self._emit('quantization_changed', self.quantization)
        if enabled:
            self.quantize_now()
        return True

    def quantize_now(self) -> bool:
        return self._apply(quantize(self.window, self.quantization.bpm, self.duration),
                           "quantize")

    # =========================================================================
    # BOOKMARKS
    # =========================================================================

    def _find_bookmark(self, bookmark_id: str) -> Optional[LoopBookmark]:
        return next((b for b in self.bookmarks if b.id == bookmark_id), None)

    def add_bookmark(self, name: Optional[str] = None, annotation: str = "") -> Optional[LoopBookmark]:
        """Save the current window (and rate) as a bookmark."""
        if self.window is None:
            return None
        if name is None:
            name = f"Loop {len(self.bookmarks) + 1}"

        bookmark = LoopBookmark(self.window.start, self.window.end, name=name,
                                playback_rate=self.playback.playback_rate,
                                annotation=annotation)
        self.bookmarks.append(bookmark)
        self.selected_bookmark_id = bookmark.id
        logger.info(f"Added bookmark '{name}'")
        self._emit('bookmarks_changed', self.bookmarks)
        return bookmark

    def load_bookmark(self, bookmark_id: str) -> bool:
        """Restore a bookmark's window and rate, and start looping it."""
        bookmark = self._find_bookmark(bookmark_id)
        if bookmark is None:
            return False
        if not self._apply(lw.clamp(bookmark.window, self.duration), "load_bookmark"):
            return False

        if bookmark.playback_rate is not None:
            self.set_playback_rate(bookmark.playback_rate)
        self.set_looping(True)
        self.selected_bookmark_id = bookmark.id
        self._emit('bookmarks_changed', self.bookmarks)
        return True

    def rename_bookmark(self, bookmark_id: str, new_name: str) -> bool:
        bookmark = self._find_bookmark(bookmark_id)
        if bookmark is None or not new_name or not new_name.strip():
            return False
        bookmark.name = new_name.strip()
        logger.info(f"Renamed bookmark to '{bookmark.name}'")
        self._emit('bookmarks_changed', self.bookmarks)
        return True

    def delete_bookmark(self, bookmark_id: str) -> bool:
        bookmark = self._find_bookmark(bookmark_id)
        if bookmark is None:
            return False
        self.bookmarks.remove(bookmark)
        if self.selected_bookmark_id == bookmark_id:
            self.selected_bookmark_id = None
        logger.info(f"Deleted bookmark '{bookmark.name}'")
        self._emit('bookmarks_changed', self.bookmarks)
        return True

    def export_bookmarks(self) -> List[dict]:
        return [b.to_dict() for b in self.bookmarks]

    def import_bookmarks(self, items: List[dict]) -> int:
        """
        Append bookmarks from dicts. Entries that are malformed or do not fit
        the current track are skipped.

        Returns:
            Number of bookmarks imported
        """
        added = 0
        for data in items:
            try:
                bookmark = LoopBookmark.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed bookmark: {e}")
                continue
            if lw.clamp(bookmark.window, self.duration) is None:
                logger.warning(f"Skipping bookmark '{bookmark.name}' outside the track")
                continue
            if self._find_bookmark(bookmark.id) is not None:
                bookmark.id = str(uuid.uuid4())
            self.bookmarks.append(bookmark)
            added += 1

        if added:
            self._emit('bookmarks_changed', self.bookmarks)
        return added

    # =========================================================================
    # SHARE LINKS
    # =========================================================================

    def share_link(self, base_url: str, include_bookmark: bool = False) -> str:
        """Link carrying the current window, rate and optionally the selected bookmark."""
        bookmark = None
        if include_bookmark and self.selected_bookmark_id:
            selected = self._find_bookmark(self.selected_bookmark_id)
            bookmark = selected.to_dict() if selected else None
        return generate_share_link(base_url, window=self.window,
                                   playback_rate=self.playback.playback_rate,
                                   bookmark=bookmark)

    def apply_share_link(self, url: str) -> bool:
        """
        Apply the settings from a shared link to the loaded track.

        Returns:
            True if a loop window from the link was applied
        """
        data = parse_share_link(url)

        if 'playback_rate' in data:
            self.set_playback_rate(data['playback_rate'])
        if 'bookmark' in data:
            self.import_bookmarks([data['bookmark']])

        applied = False
        if 'loop_start' in data and 'loop_end' in data:
            applied = self.set_loop_points(data['loop_start'], data['loop_end'])
            if applied:
                self.set_looping(True)
        return applied

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def dispose(self) -> None:
        """Release the engine handle. The session is unusable afterwards."""
        logger.info("Disposing session")
        self.clock.dispose()
