"""
Transport Controls Widget for AB Loop Player.

Contains play/pause, seek back/forward, a position slider, the time
display and the playback rate menu.
"""

import logging
import tkinter as tk
from typing import Callable, Optional

import customtkinter as ctk

from config import (
    COLOR_BTN_PRIMARY, COLOR_BG_LIGHT, COLOR_TEXT, COLOR_TEXT_DIM,
    BTN_HEIGHT, BTN_FONT_SIZE, COLOR_BTN_TEXT, PADDING_SMALL, PADDING_MEDIUM,
    PLAYBACK_RATES, SEEK_STEP_SECONDS
)
from utils.formatting import format_time

logger = logging.getLogger("ABLoop.Transport")


def _rate_label(rate: float) -> str:
    return f"{rate:g}x"


class TransportControls(ctk.CTkFrame):
    """
    Transport control panel with play/pause, seeking, time display and rate.
    """

    def __init__(
        self,
        parent: tk.Widget,
        on_play_pause: Optional[Callable] = None,
        on_seek: Optional[Callable[[float], None]] = None,
        on_seek_step: Optional[Callable[[float], None]] = None,
        on_rate_change: Optional[Callable[[float], None]] = None,
        **kwargs
    ):
        super().__init__(parent, fg_color="transparent", **kwargs)

        self.on_play_pause = on_play_pause
        self.on_seek = on_seek
        self.on_seek_step = on_seek_step
        self.on_rate_change = on_rate_change

        self._is_playing = False
        self._duration = 0.0
        self._dragging = False

        self._create_widgets()
        logger.debug("TransportControls initialized")

    def _create_widgets(self):
        """Create the transport control widgets."""
        # =========================================================
        # 1. POSITION SLIDER
        # =========================================================
        self.slider = ctk.CTkSlider(
            self, from_=0, to=1, number_of_steps=None,
            command=self._on_slider_drag
        )
        self.slider.set(0)
        self.slider.pack(fill="x", pady=(0, PADDING_MEDIUM))
        self.slider.bind("<ButtonRelease-1>", self._on_slider_release)

        # =========================================================
        # 2. BUTTON ROW
        # =========================================================
        row = ctk.CTkFrame(self, fg_color="transparent")
        row.pack(fill="x")

        self.btn_back = ctk.CTkButton(
            row, text=f"⏪ {SEEK_STEP_SECONDS:g}s", width=70, height=BTN_HEIGHT,
            fg_color=COLOR_BG_LIGHT, text_color=COLOR_TEXT,
            command=lambda: self._on_step(-SEEK_STEP_SECONDS)
        )
        self.btn_back.pack(side="left", padx=(0, PADDING_SMALL))

        # Play/Pause button
        self.btn_play = ctk.CTkButton(
            row,
            text="▶  PLAY",
            width=120,
            height=BTN_HEIGHT,
            font=("Segoe UI", BTN_FONT_SIZE, "bold"),
            fg_color=COLOR_BTN_PRIMARY,
            text_color=COLOR_BTN_TEXT,
            command=self._on_play_click
        )
        self.btn_play.pack(side="left", padx=(0, PADDING_SMALL))

        self.btn_forward = ctk.CTkButton(
            row, text=f"{SEEK_STEP_SECONDS:g}s ⏩", width=70, height=BTN_HEIGHT,
            fg_color=COLOR_BG_LIGHT, text_color=COLOR_TEXT,
            command=lambda: self._on_step(SEEK_STEP_SECONDS)
        )
        self.btn_forward.pack(side="left", padx=(0, 20))

        # Time display
        self.time_label = ctk.CTkLabel(
            row,
            text=format_time(0),
            font=("Consolas", 24, "bold"),
            text_color=COLOR_TEXT
        )
        self.time_label.pack(side="left", padx=(10, 4))

        self.duration_label = ctk.CTkLabel(
            row,
            text=f"/ {format_time(0)}",
            font=("Consolas", 14),
            text_color=COLOR_TEXT_DIM
        )
        self.duration_label.pack(side="left")

        # Rate menu
        self.rate_menu = ctk.CTkOptionMenu(
            row,
            values=[_rate_label(r) for r in PLAYBACK_RATES],
            width=80,
            command=self._on_rate_select
        )
        self.rate_menu.set(_rate_label(1.0))
        self.rate_menu.pack(side="right")

        ctk.CTkLabel(
            row, text="Speed:", font=("Segoe UI", 11), text_color=COLOR_TEXT_DIM
        ).pack(side="right", padx=(0, PADDING_SMALL))

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    def _on_play_click(self):
        if self.on_play_pause:
            self.on_play_pause()

    def _on_step(self, seconds: float):
        if self.on_seek_step:
            self.on_seek_step(seconds)

    def _on_rate_select(self, choice: str):
        rate = float(choice.rstrip("x"))
        if self.on_rate_change:
            self.on_rate_change(rate)

    def _on_slider_drag(self, value):
        self._dragging = True
        self.time_label.configure(text=format_time(float(value) * self._duration))

    def _on_slider_release(self, event=None):
        if not self._dragging:
            return
        self._dragging = False
        if self.on_seek and self._duration > 0:
            self.on_seek(self.slider.get() * self._duration)

    # =========================================================================
    # PUBLIC METHODS
    # =========================================================================

    def set_playing(self, is_playing: bool):
        """Update the play button state."""
        self._is_playing = is_playing
        if is_playing:
            self.btn_play.configure(text="⏸  PAUSE")
        else:
            self.btn_play.configure(text="▶  PLAY")

    def set_duration(self, seconds: float):
        self._duration = seconds
        self.duration_label.configure(text=f"/ {format_time(seconds)}")

    def set_time(self, seconds: float):
        """Update the time display (ignored while the user drags the slider)."""
        if self._dragging:
            return
        self.time_label.configure(text=format_time(seconds))
        if self._duration > 0:
            self.slider.set(seconds / self._duration)

    def set_rate(self, rate: float):
        self.rate_menu.set(_rate_label(rate))

    def reset(self):
        """Reset to initial state."""
        self.set_playing(False)
        self.set_duration(0)
        self.set_time(0)
        self.slider.set(0)
