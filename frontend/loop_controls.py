"""
Loop Controls Widget for AB Loop Player.

Contains:
- Set A / Set B buttons (at the playhead)
- Loop point nudge (+/- buttons)
- Loop point entry fields (MM:SS.mmm, M:SS or seconds)
- Move / halve / double the window
- Loop on/off and clear
- BPM entry, auto-quantize switch and Quantize Now
- Bookmarks (save, recall, rename, delete)
"""

import logging
import tkinter as tk
from typing import Callable, Optional

import customtkinter as ctk

from config import (
    COLOR_BTN_PRIMARY, COLOR_BTN_SUCCESS, COLOR_BTN_DISABLED, COLOR_BTN_DANGER,
    COLOR_LOOP_IN, COLOR_LOOP_OUT, COLOR_TEXT, COLOR_TEXT_DIM, COLOR_BG_LIGHT,
    BTN_HEIGHT, BTN_FONT_SIZE, PADDING_SMALL, PADDING_MEDIUM, COLOR_BTN_TEXT,
    EXTEND_STEP_SECONDS
)
from utils.formatting import format_time

logger = logging.getLogger("ABLoop.LoopControls")

NO_BOOKMARKS = "(no bookmarks)"


class LoopControls(ctk.CTkFrame):
    """
    Loop control panel. Every button forwards to a callback; the panel only
    displays what the session reports back through the set_* methods.
    """

    def __init__(
        self,
        parent: tk.Widget,
        on_set_start: Optional[Callable] = None,
        on_set_end: Optional[Callable] = None,
        on_extend_start: Optional[Callable[[float], None]] = None,
        on_extend_end: Optional[Callable[[float], None]] = None,
        on_start_text: Optional[Callable[[str], bool]] = None,
        on_end_text: Optional[Callable[[str], bool]] = None,
        on_move: Optional[Callable[[int], None]] = None,
        on_scale: Optional[Callable[[float], None]] = None,
        on_toggle_looping: Optional[Callable] = None,
        on_clear: Optional[Callable] = None,
        on_bpm_text: Optional[Callable[[str], bool]] = None,
        on_quantize_toggle: Optional[Callable[[bool], bool]] = None,
        on_quantize_now: Optional[Callable] = None,
        on_add_bookmark: Optional[Callable] = None,
        on_select_bookmark: Optional[Callable[[str], None]] = None,
        on_rename_bookmark: Optional[Callable[[str, str], None]] = None,
        on_delete_bookmark: Optional[Callable[[str], None]] = None,
        **kwargs
    ):
        super().__init__(parent, fg_color="transparent", **kwargs)

        self.on_set_start = on_set_start
        self.on_set_end = on_set_end
        self.on_extend_start = on_extend_start
        self.on_extend_end = on_extend_end
        self.on_start_text = on_start_text
        self.on_end_text = on_end_text
        self.on_move = on_move
        self.on_scale = on_scale
        self.on_toggle_looping = on_toggle_looping
        self.on_clear = on_clear
        self.on_bpm_text = on_bpm_text
        self.on_quantize_toggle = on_quantize_toggle
        self.on_quantize_now = on_quantize_now
        self.on_add_bookmark = on_add_bookmark
        self.on_select_bookmark = on_select_bookmark
        self.on_rename_bookmark = on_rename_bookmark
        self.on_delete_bookmark = on_delete_bookmark

        self._window = None
        self._bpm = None
        self._bookmark_ids = {}   # menu label -> bookmark id
        self._selected_label = None

        self._create_widgets()
        logger.debug("LoopControls initialized")

    def _create_widgets(self):
        """Create all loop control widgets."""

        # =========================================================
        # 1. A/B CONTROL ROW
        # =========================================================
        top_row = ctk.CTkFrame(self, fg_color="transparent")
        top_row.pack(fill="x", pady=(0, PADDING_MEDIUM))

        self.btn_set_start = self._point_controls(
            top_row, "A", COLOR_LOOP_IN,
            lambda: self.on_set_start and self.on_set_start(),
            lambda amount: self.on_extend_start and self.on_extend_start(amount),
        )
        self.btn_set_end = self._point_controls(
            top_row, "B", COLOR_LOOP_OUT,
            lambda: self.on_set_end and self.on_set_end(),
            lambda amount: self.on_extend_end and self.on_extend_end(amount),
        )

        self.btn_loop = ctk.CTkButton(
            top_row, text="🔁 LOOP OFF", width=110, height=BTN_HEIGHT,
            font=("Segoe UI", BTN_FONT_SIZE, "bold"),
            fg_color=COLOR_BTN_DISABLED, text_color=COLOR_BTN_TEXT,
            command=lambda: self.on_toggle_looping and self.on_toggle_looping()
        )
        self.btn_loop.pack(side="left", padx=(PADDING_MEDIUM, 3))

        ctk.CTkButton(
            top_row, text="✕ CLEAR", width=75, height=BTN_HEIGHT,
            font=("Segoe UI", BTN_FONT_SIZE - 1),
            fg_color=COLOR_BTN_DANGER, hover_color="#ff4444",
            command=lambda: self.on_clear and self.on_clear()
        ).pack(side="left")

        # =========================================================
        # 2. ENTRY / WINDOW SHAPE ROW
        # =========================================================
        mid_row = ctk.CTkFrame(self, fg_color="transparent")
        mid_row.pack(fill="x", pady=(0, PADDING_MEDIUM))

        self.entry_start = self._time_entry(mid_row, "A:", COLOR_LOOP_IN, self._on_start_entry)
        self.entry_end = self._time_entry(mid_row, "B:", COLOR_LOOP_OUT, self._on_end_entry)

        self.length_label = ctk.CTkLabel(
            mid_row, text="Length: --",
            font=("Segoe UI", 11), text_color=COLOR_TEXT_DIM, width=110
        )
        self.length_label.pack(side="left", padx=PADDING_MEDIUM)

        for text, command in (
            ("◀", lambda: self.on_move and self.on_move(-1)),
            ("▶", lambda: self.on_move and self.on_move(1)),
            ("½", lambda: self.on_scale and self.on_scale(0.5)),
            ("×2", lambda: self.on_scale and self.on_scale(2.0)),
        ):
            ctk.CTkButton(
                mid_row, text=text, width=36, height=28,
                fg_color=COLOR_BG_LIGHT, text_color=COLOR_TEXT, command=command
            ).pack(side="left", padx=1)

        # =========================================================
        # 3. TEMPO ROW
        # =========================================================
        bpm_row = ctk.CTkFrame(self, fg_color="transparent")
        bpm_row.pack(fill="x", pady=(0, PADDING_MEDIUM))

        ctk.CTkLabel(
            bpm_row, text="BPM:", font=("Segoe UI", 11), text_color=COLOR_TEXT_DIM
        ).pack(side="left", padx=(0, PADDING_SMALL))

        self.entry_bpm = ctk.CTkEntry(bpm_row, width=60, height=28, font=("Consolas", 11))
        self.entry_bpm.pack(side="left")
        self.entry_bpm.bind("<Return>", self._on_bpm_entry)
        self.entry_bpm.bind("<FocusOut>", self._on_bpm_entry)

        self.quantize_var = tk.BooleanVar(value=False)
        self.chk_quantize = ctk.CTkSwitch(
            bpm_row, text="Snap to beat", variable=self.quantize_var,
            command=self._on_quantize_switch
        )
        self.chk_quantize.pack(side="left", padx=PADDING_MEDIUM)

        self.btn_quantize = ctk.CTkButton(
            bpm_row, text="Quantize Now", width=110, height=28,
            fg_color=COLOR_BTN_PRIMARY, text_color=COLOR_BTN_TEXT,
            command=lambda: self.on_quantize_now and self.on_quantize_now()
        )
        self.btn_quantize.pack(side="left")

        # =========================================================
        # 4. BOOKMARK ROW
        # =========================================================
        bm_row = ctk.CTkFrame(self, fg_color="transparent")
        bm_row.pack(fill="x")

        ctk.CTkLabel(
            bm_row, text="🔖 Bookmark:", font=("Segoe UI", 11, "bold"), text_color=COLOR_TEXT_DIM
        ).pack(side="left")

        self.bookmark_menu = ctk.CTkOptionMenu(
            bm_row, values=[NO_BOOKMARKS], width=200,
            command=self._on_bookmark_select
        )
        self.bookmark_menu.pack(side="left", padx=(10, 3))

        ctk.CTkButton(
            bm_row, text="+ SAVE", width=65, height=24,
            font=("Segoe UI", 10, "bold"),
            fg_color=COLOR_BTN_SUCCESS, text_color="#000000",
            command=lambda: self.on_add_bookmark and self.on_add_bookmark()
        ).pack(side="left", padx=3)

        ctk.CTkButton(
            bm_row, text="✎", width=30, height=24,
            fg_color=COLOR_BG_LIGHT, command=self._rename_bookmark
        ).pack(side="left", padx=3)

        ctk.CTkButton(
            bm_row, text="🗑", width=30, height=24,
            fg_color=COLOR_BTN_DANGER, hover_color="#ff4444",
            command=self._delete_bookmark
        ).pack(side="left", padx=3)

    def _point_controls(self, parent, label, color, on_set, on_extend):
        """SET button plus -/+ nudge buttons for one loop point."""
        frame = ctk.CTkFrame(parent, fg_color="transparent")
        frame.pack(side="left", padx=(0, PADDING_MEDIUM))

        btn = ctk.CTkButton(
            frame, text=f"⬇ SET {label}", width=90, height=BTN_HEIGHT,
            font=("Segoe UI", BTN_FONT_SIZE),
            fg_color=color, text_color="#000000",
            command=on_set
        )
        btn.pack(side="left", padx=(0, PADDING_SMALL))

        ctk.CTkButton(
            frame, text="−", width=30, height=28,
            command=lambda: on_extend(-EXTEND_STEP_SECONDS)
        ).pack(side="left", padx=1)
        ctk.CTkButton(
            frame, text="+", width=30, height=28,
            command=lambda: on_extend(EXTEND_STEP_SECONDS)
        ).pack(side="left", padx=1)
        return btn

    def _time_entry(self, parent, label, color, handler):
        frame = ctk.CTkFrame(parent, fg_color="transparent")
        frame.pack(side="left", padx=(0, PADDING_MEDIUM))

        ctk.CTkLabel(
            frame, text=label, font=("Segoe UI", 11), text_color=color
        ).pack(side="left", padx=(0, PADDING_SMALL))

        entry = ctk.CTkEntry(frame, width=95, height=28, font=("Consolas", 11))
        entry.pack(side="left")
        entry.bind("<Return>", handler)
        entry.bind("<FocusOut>", handler)
        return entry

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    def _on_start_entry(self, event=None):
        text = self.entry_start.get().strip()
        if not text or (self._window and text == format_time(self._window.start)):
            return
        if self.on_start_text:
            self.on_start_text(text)

    def _on_end_entry(self, event=None):
        text = self.entry_end.get().strip()
        if not text or (self._window and text == format_time(self._window.end)):
            return
        if self.on_end_text:
            self.on_end_text(text)

    def _on_bpm_entry(self, event=None):
        text = self.entry_bpm.get().strip()
        if text == (str(self._bpm) if self._bpm is not None else ""):
            return
        if self.on_bpm_text:
            self.on_bpm_text(text)

    def _on_quantize_switch(self):
        if self.on_quantize_toggle:
            self.on_quantize_toggle(self.quantize_var.get())

    def _on_bookmark_select(self, label):
        self._selected_label = label
        bookmark_id = self._bookmark_ids.get(label)
        if bookmark_id and self.on_select_bookmark:
            self.on_select_bookmark(bookmark_id)

    def _rename_bookmark(self):
        """Open a dialog to rename the selected bookmark."""
        bookmark_id = self._bookmark_ids.get(self._selected_label)
        if not bookmark_id:
            return

        dialog = ctk.CTkInputDialog(text="Rename bookmark:", title="Rename Bookmark")
        new_name = dialog.get_input()

        if new_name and new_name.strip() and self.on_rename_bookmark:
            self.on_rename_bookmark(bookmark_id, new_name.strip())

    def _delete_bookmark(self):
        bookmark_id = self._bookmark_ids.get(self._selected_label)
        if bookmark_id and self.on_delete_bookmark:
            self.on_delete_bookmark(bookmark_id)

    # =========================================================================
    # PUBLIC METHODS
    # =========================================================================

    def set_window(self, window):
        """Update the displayed loop points (None = no loop)."""
        self._window = window

        self.entry_start.delete(0, "end")
        self.entry_end.delete(0, "end")
        if window is None:
            self.length_label.configure(text="Length: --")
            return

        self.entry_start.insert(0, format_time(window.start))
        self.entry_end.insert(0, format_time(window.end))
        self.length_label.configure(text=f"Length: {window.length:.3f}s")

    def set_looping(self, is_looping: bool):
        if is_looping:
            self.btn_loop.configure(text="🔁 LOOP ON", fg_color=COLOR_BTN_SUCCESS)
        else:
            self.btn_loop.configure(text="🔁 LOOP OFF", fg_color=COLOR_BTN_DISABLED)

    def set_quantization(self, settings: dict):
        """Reflect {bpm, enabled} in the BPM entry and snap switch."""
        self._bpm = settings.get('bpm')
        self.entry_bpm.delete(0, "end")
        if settings.get('bpm') is not None:
            self.entry_bpm.insert(0, str(settings['bpm']))
        self.quantize_var.set(bool(settings.get('enabled')))

    def set_bookmarks(self, bookmarks, selected_id=None):
        """Rebuild the bookmark menu."""
        self._bookmark_ids = {}
        labels = []
        selected_label = None
        for i, bookmark in enumerate(bookmarks, start=1):
            name = bookmark.name[:20] + "…" if len(bookmark.name) > 20 else bookmark.name
            label = f"{i}. {name} ({format_time(bookmark.start)})"
            self._bookmark_ids[label] = bookmark.id
            labels.append(label)
            if bookmark.id == selected_id:
                selected_label = label

        self.bookmark_menu.configure(values=labels or [NO_BOOKMARKS])
        self._selected_label = selected_label
        self.bookmark_menu.set(selected_label or (NO_BOOKMARKS if not labels else ""))

    def reset(self):
        """Reset to initial state."""
        self.set_window(None)
        self.set_looping(False)
        self.set_bookmarks([])
