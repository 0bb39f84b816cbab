"""
Main Application Window for AB Loop Player.

Layout:
- Header with song title and file / share buttons
- Transport (position slider, play/pause, seek, time, speed)
- Loop controls (A/B, entries, shape, tempo, bookmarks)
- Status bar

Threading:
The session runs on an asyncio event loop in a daemon thread. Tk stays on
the main thread. UI actions are handed to the loop with
call_soon_threadsafe / run_coroutine_threadsafe, and session events come
back through msg_queue, drained by after() on the main thread.
"""

import os
import json
import queue
import asyncio
import logging
import threading
from tkinter import filedialog

import customtkinter as ctk

from config import (
    WINDOW_TITLE, WINDOW_WIDTH, WINDOW_HEIGHT,
    WINDOW_MIN_WIDTH, WINDOW_MIN_HEIGHT, UI_QUEUE_POLL_MS,
    COLOR_BG_DARK, COLOR_BG_MEDIUM, COLOR_BG_LIGHT,
    COLOR_TEXT, COLOR_TEXT_DIM, COLOR_BTN_PRIMARY, COLOR_BTN_TEXT,
    PADDING_SMALL, PADDING_MEDIUM,
    MIN_PLAYBACK_RATE, MAX_PLAYBACK_RATE, RATE_STEP, SEEK_STEP_SECONDS, SUPPORTED_FORMATS
)
from backend import Session, ClockState, LoadError
from .transport import TransportControls
from .loop_controls import LoopControls

logger = logging.getLogger("ABLoop.App")

# Base for generated share links; only the query string matters
SHARE_BASE_URL = "abloop://open"


class ABLoopApp(ctk.CTk):
    def __init__(self, engine):
        super().__init__()

        self.msg_queue = queue.Queue()

        self.title(WINDOW_TITLE)
        self.geometry(f"{WINDOW_WIDTH}x{WINDOW_HEIGHT}")
        self.minsize(WINDOW_MIN_WIDTH, WINDOW_MIN_HEIGHT)
        self.resizable(True, True)
        self.configure(fg_color=COLOR_BG_DARK)

        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        self.engine = engine
        self.session = Session(engine)

        # Session event loop on its own thread
        self.loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._run_loop, name="SessionLoop", daemon=True
        )
        self._loop_thread.start()

        self._create_widgets()
        self._wire_callbacks()
        self._bind_shortcuts()

        self.protocol("WM_DELETE_WINDOW", self._on_close)

        self.after(UI_QUEUE_POLL_MS, self._check_msg_queue)

        logger.info("ABLoopApp initialized")

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    # =========================================================================
    # LAYOUT
    # =========================================================================

    def _create_widgets(self):
        """Create all UI widgets."""

        # =========================================================
        # HEADER
        # =========================================================
        header_frame = ctk.CTkFrame(self, fg_color="transparent", height=50)
        header_frame.pack(fill="x", side="top", padx=PADDING_MEDIUM, pady=(PADDING_MEDIUM, 0))

        self.btn_open = ctk.CTkButton(
            header_frame, text="📂 Open", width=80, height=30,
            fg_color=COLOR_BTN_PRIMARY, text_color=COLOR_BTN_TEXT,
            command=self._on_open_file
        )
        self.btn_open.pack(side="left", padx=(0, 15))

        self.title_label = ctk.CTkLabel(
            header_frame, text="No song loaded",
            font=("Segoe UI", 20, "bold"), text_color=COLOR_TEXT
        )
        self.title_label.pack(side="left")

        for text, command in (
            ("⇪ Export", self._on_export_bookmarks),
            ("⇩ Import", self._on_import_bookmarks),
            ("📋 Paste Link", self._on_paste_link),
            ("🔗 Copy Link", self._on_copy_link),
        ):
            ctk.CTkButton(
                header_frame, text=text, width=90, height=30,
                fg_color="transparent", border_width=1,
                border_color=COLOR_TEXT_DIM, text_color=COLOR_TEXT,
                hover_color=COLOR_BG_LIGHT, command=command
            ).pack(side="right", padx=(PADDING_SMALL, 0))

        # =========================================================
        # TRANSPORT
        # =========================================================
        transport_frame = ctk.CTkFrame(self, fg_color=COLOR_BG_MEDIUM, corner_radius=8)
        transport_frame.pack(fill="x", padx=PADDING_MEDIUM, pady=PADDING_MEDIUM)

        self.transport = TransportControls(
            transport_frame,
            on_play_pause=lambda: self._call(self.session.toggle_play_pause),
            on_seek=lambda pos: self._call(self.session.seek, pos),
            on_seek_step=self._on_seek_step,
            on_rate_change=lambda rate: self._call(self.session.set_playback_rate, rate),
        )
        self.transport.pack(fill="x", padx=PADDING_MEDIUM, pady=PADDING_MEDIUM)

        # =========================================================
        # LOOP CONTROLS
        # =========================================================
        loop_frame = ctk.CTkFrame(self, fg_color=COLOR_BG_MEDIUM, corner_radius=8)
        loop_frame.pack(fill="x", padx=PADDING_MEDIUM, pady=(0, PADDING_MEDIUM))

        s = self.session
        self.loop_controls = LoopControls(
            loop_frame,
            on_set_start=lambda: self._edit(s.set_loop_start_at_current),
            on_set_end=lambda: self._edit(s.set_loop_end_at_current),
            on_extend_start=lambda d: self._edit(s.extend_loop_start, d),
            on_extend_end=lambda d: self._edit(s.extend_loop_end, d),
            on_start_text=lambda text: self._edit(s.set_loop_start_text, text),
            on_end_text=lambda text: self._edit(s.set_loop_end_text, text),
            on_move=lambda direction: self._edit(s.move_loop, direction),
            on_scale=lambda factor: self._edit(s.scale_loop, factor),
            on_toggle_looping=lambda: self._call(s.toggle_looping),
            on_clear=lambda: self._call(s.clear_loop),
            on_bpm_text=lambda text: self._edit(s.set_bpm_text, text, what="BPM"),
            on_quantize_toggle=lambda flag: self._edit(s.set_quantize_enabled, flag, what="Snap to beat"),
            on_quantize_now=lambda: self._edit(s.quantize_now, what="Quantize"),
            on_add_bookmark=lambda: self._call(s.add_bookmark),
            on_select_bookmark=lambda bid: self._call(s.load_bookmark, bid),
            on_rename_bookmark=lambda bid, name: self._call(s.rename_bookmark, bid, name),
            on_delete_bookmark=lambda bid: self._call(s.delete_bookmark, bid),
        )
        self.loop_controls.pack(fill="x", padx=PADDING_MEDIUM, pady=PADDING_MEDIUM)

        # =========================================================
        # STATUS BAR
        # =========================================================
        self.status_label = ctk.CTkLabel(
            self, text="Open an audio file to begin",
            font=("Segoe UI", 11), text_color=COLOR_TEXT_DIM, anchor="w"
        )
        self.status_label.pack(fill="x", side="bottom", padx=PADDING_MEDIUM, pady=(0, PADDING_SMALL))

    # =========================================================================
    # MESSAGE QUEUE (session loop -> Tk)
    # =========================================================================

    def _check_msg_queue(self):
        """
        Poll the message queue for events from the session thread.
        This runs strictly on the main thread.
        """
        try:
            while True:
                msg_type, args = self.msg_queue.get_nowait()

                if msg_type == 'position_update':
                    self.transport.set_time(*args)
                elif msg_type == 'state_change':
                    self._update_state(*args)
                elif msg_type == 'song_loaded':
                    self._update_song_loaded(*args)
                elif msg_type == 'load_failed':
                    self.status_label.configure(text=f"⚠ {args[0]}")
                elif msg_type == 'loop_points_changed':
                    self.loop_controls.set_window(*args)
                elif msg_type == 'looping_changed':
                    self.loop_controls.set_looping(*args)
                elif msg_type == 'quantization_changed':
                    self.loop_controls.set_quantization(*args)
                elif msg_type == 'rate_changed':
                    self.transport.set_rate(*args)
                elif msg_type == 'bookmarks_changed':
                    self.loop_controls.set_bookmarks(*args)
                elif msg_type == 'rejected':
                    self._on_rejected(*args)
                elif msg_type == 'status':
                    self.status_label.configure(text=args[0])
                elif msg_type == 'clipboard':
                    self._copy_to_clipboard(*args)

        except queue.Empty:
            pass

        self.after(UI_QUEUE_POLL_MS, self._check_msg_queue)

    def _wire_callbacks(self):
        """Wire up Session events to push to the thread-safe queue."""
        def q(key): return lambda *args: self.msg_queue.put((key, args))

        self.session.on('state_change', q('state_change'))
        self.session.on('song_loaded', q('song_loaded'))
        self.session.on('load_failed', q('load_failed'))
        self.session.on('loop_points_changed', q('loop_points_changed'))
        self.session.on('looping_changed', q('looping_changed'))
        self.session.on('quantization_changed',
                        lambda settings: self.msg_queue.put(('quantization_changed', (settings.to_dict(),))))
        self.session.on('rate_changed', q('rate_changed'))
        self.session.on('bookmarks_changed', self._on_bookmarks_changed)
        self.session.on_time(q('position_update'))

    def _on_bookmarks_changed(self, bookmarks):
        # Copy on the session thread so Tk never iterates a list being mutated
        self.msg_queue.put(('bookmarks_changed', (list(bookmarks), self.session.selected_bookmark_id)))

    # =========================================================================
    # UI -> SESSION
    # =========================================================================

    def _call(self, fn, *args):
        """Run a session method on the session loop."""
        self.loop.call_soon_threadsafe(fn, *args)

    def _edit(self, fn, *args, what="Loop edit"):
        """Run a session mutator; a rejection resyncs the controls."""
        def run():
            if not fn(*args):
                self.msg_queue.put(('rejected', (what, self.session.snapshot())))
        self._call(run)

    def _on_rejected(self, what, snapshot):
        self.loop_controls.set_window(snapshot['window'])
        self.loop_controls.set_quantization(snapshot['quantization'])
        self.status_label.configure(text=f"{what} ignored")

    def _on_seek_step(self, seconds):
        if seconds >= 0:
            self._call(self.session.seek_forward, seconds)
        else:
            self._call(self.session.seek_backward, -seconds)

    def _step_rate(self, delta):
        def run():
            rate = self.session.playback.playback_rate + delta
            rate = max(MIN_PLAYBACK_RATE, min(MAX_PLAYBACK_RATE, rate))
            self.session.set_playback_rate(rate)
        self._call(run)

    def _bind_shortcuts(self):
        def _is_typing():
            """Check if focus is in a text input widget."""
            focused = self.focus_get()
            if focused is None:
                return False
            if focused.winfo_class() in ('Text', 'Entry', 'TEntry', 'Spinbox'):
                return True
            return isinstance(focused, (ctk.CTkTextbox, ctk.CTkEntry))

        def _safe(fn):
            """Wrap callback so it's a no-op while the user is typing."""
            def wrapper(e):
                if _is_typing():
                    return
                fn()
                return "break"
            return wrapper

        s = self.session
        self.bind("<space>", _safe(lambda: self._call(s.toggle_play_pause)))
        self.bind("<comma>", _safe(lambda: self._edit(s.set_loop_start_at_current)))
        self.bind("<period>", _safe(lambda: self._edit(s.set_loop_end_at_current)))
        self.bind("<slash>", _safe(lambda: self._call(s.toggle_looping)))
        self.bind("<Left>", _safe(lambda: self._on_seek_step(-SEEK_STEP_SECONDS)))
        self.bind("<Right>", _safe(lambda: self._on_seek_step(SEEK_STEP_SECONDS)))
        self.bind("<Shift-Left>", _safe(lambda: self._step_rate(-RATE_STEP)))
        self.bind("<Shift-Right>", _safe(lambda: self._step_rate(RATE_STEP)))
        self.bind("<Escape>", lambda e: self.focus_set())

    # =========================================================================
    # FILES
    # =========================================================================

    def _on_open_file(self):
        patterns = " ".join(f"*{ext}" for ext in SUPPORTED_FORMATS)
        path = filedialog.askopenfilename(
            title="Open audio file",
            filetypes=[("Audio files", patterns), ("All files", "*.*")]
        )
        if path:
            self.load_file(path)

    def load_file(self, path: str):
        """Read a file and hand its bytes to the session."""
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.error(f"Could not read {path}: {e}")
            self.status_label.configure(text=f"⚠ Could not read {os.path.basename(path)}")
            return

        name = os.path.basename(path)
        self.status_label.configure(text=f"Loading {name}...")
        future = asyncio.run_coroutine_threadsafe(self.session.load(data, name), self.loop)
        future.add_done_callback(self._on_load_done)

    def _on_load_done(self, future):
        # Runs on the session thread; load_failed has already been emitted
        try:
            future.result()
        except LoadError as e:
            logger.warning(f"Load failed: {e}")

    def _on_export_bookmarks(self):
        path = filedialog.asksaveasfilename(
            title="Export bookmarks", defaultextension=".json",
            filetypes=[("JSON", "*.json")]
        )
        if not path:
            return
        future = asyncio.run_coroutine_threadsafe(self._async_export(), self.loop)
        items = future.result()
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2)
        except OSError as e:
            logger.error(f"Could not write {path}: {e}")
            self.status_label.configure(text="⚠ Export failed")
            return
        self.status_label.configure(text=f"Exported {len(items)} bookmark(s)")

    async def _async_export(self):
        return self.session.export_bookmarks()

    def _on_import_bookmarks(self):
        path = filedialog.askopenfilename(title="Import bookmarks", filetypes=[("JSON", "*.json")])
        if not path:
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                items = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read bookmarks from {path}: {e}")
            self.status_label.configure(text="⚠ Import failed")
            return
        if not isinstance(items, list):
            self.status_label.configure(text="⚠ Import failed")
            return

        def run():
            added = self.session.import_bookmarks(items)
            self.msg_queue.put(('status', (f"Imported {added} bookmark(s)",)))
        self._call(run)

    # =========================================================================
    # SHARE LINKS
    # =========================================================================

    def _on_copy_link(self):
        def run():
            link = self.session.share_link(SHARE_BASE_URL, include_bookmark=True)
            self.msg_queue.put(('clipboard', (link,)))
        self._call(run)

    def _copy_to_clipboard(self, link):
        self.clipboard_clear()
        self.clipboard_append(link)
        self.status_label.configure(text="Link copied to clipboard")
        logger.info(f"Share link: {link}")

    def _on_paste_link(self):
        dialog = ctk.CTkInputDialog(text="Paste a shared loop link:", title="Open Link")
        url = dialog.get_input()
        if not url or not url.strip():
            return

        def run():
            applied = self.session.apply_share_link(url.strip())
            self.msg_queue.put(('status', ("Link applied" if applied else "Link had no usable loop",)))
        self._call(run)

    # =========================================================================
    # SESSION -> UI
    # =========================================================================

    def _update_state(self, state):
        """Update transport buttons based on clock state."""
        self.transport.set_playing(state is ClockState.PLAYING)

        if state is ClockState.LOADING:
            self.status_label.configure(text="Loading...")
        elif state is ClockState.PAUSED:
            self.status_label.configure(text="Paused")
        elif state is ClockState.PLAYING:
            self.status_label.configure(text="Playing")
        elif state is ClockState.READY:
            self.status_label.configure(text="Ready")

    def _update_song_loaded(self, song_name, duration):
        display_name = os.path.splitext(song_name)[0] or "Untitled"
        self.title_label.configure(text=display_name)
        self.transport.reset()
        self.transport.set_duration(duration)
        self.loop_controls.reset()
        self.status_label.configure(text=f"Loaded: {duration:.1f}s")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _async_dispose(self):
        self.session.dispose()

    def _on_close(self):
        """Handle application shutdown."""
        logger.info("Application closing")

        asyncio.run_coroutine_threadsafe(self._async_dispose(), self.loop).result()
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._loop_thread.join()
        self.loop.close()
        self.engine.shutdown()

        self.destroy()

    def run(self):
        logger.info("Starting application")
        self.mainloop()
