"""
Configuration constants for AB Loop Player.

All tunable parameters in one place for easy adjustment and debugging.
Modify these values to fine-tune audio behavior, loop editing and UI appearance.
"""

import sys
import os

# =============================================================================
# PATHS
# =============================================================================

# HELPER: Detect if we are running as a compiled exe or a script
def get_base_path():
    if getattr(sys, 'frozen', False):
        return os.path.dirname(sys.executable)
    else:
        return os.path.dirname(os.path.abspath(__file__))

# ROOT DIR
BASE_DIR = get_base_path()

# Log files land next to the script / executable
LOG_DIR = os.path.join(BASE_DIR, "logs")

# =============================================================================
# AUDIO ENGINE SETTINGS
# =============================================================================

# Sample rate for audio processing (Hz)
SAMPLE_RATE = 44100

# Number of audio channels (2 = stereo)
CHANNELS = 2

# Pygame mixer buffer size (lower = less latency, but more CPU)
MIXER_BUFFER_SIZE = 1024

# Fade applied when (re)starting a sound, to avoid clicks (milliseconds)
LOOP_FADE_MS = 10

# =============================================================================
# PLAYBACK CLOCK SETTINGS
# =============================================================================

# How often the clock samples the engine and publishes current time (seconds)
# 1/60 = ~60 updates per second
POLL_INTERVAL = 1.0 / 60.0

# =============================================================================
# LOOP EDITING SETTINGS
# =============================================================================

# Tempo range accepted for quantization
MIN_BPM = 1
MAX_BPM = 300

# Step used by the seek forward / backward controls (seconds)
SEEK_STEP_SECONDS = 5.0

# Step used by the loop start / end nudge buttons (seconds)
EXTEND_STEP_SECONDS = 0.1

# Playback rate limits and the rate menu
MIN_PLAYBACK_RATE = 0.25
MAX_PLAYBACK_RATE = 4.0
RATE_STEP = 0.25
PLAYBACK_RATES = (0.5, 0.75, 1.0, 1.25, 1.5, 2.0)

# =============================================================================
# UI SETTINGS - WINDOW
# =============================================================================

WINDOW_TITLE = "AB Loop Player"
WINDOW_WIDTH = 900
WINDOW_HEIGHT = 520
WINDOW_MIN_WIDTH = 700
WINDOW_MIN_HEIGHT = 420

# How often the UI drains the backend message queue (milliseconds)
UI_QUEUE_POLL_MS = 16

# =============================================================================
# UI SETTINGS - COLORS
# =============================================================================

COLOR_BG_DARK = "#1a1a1a"
COLOR_BG_MEDIUM = "#252525"
COLOR_BG_LIGHT = "#333333"
COLOR_LOOP_IN = "#00ff00"
COLOR_LOOP_OUT = "#ffa500"
COLOR_BTN_PRIMARY = "#3b8ed0"
COLOR_BTN_SUCCESS = "#2cc985"
COLOR_BTN_WARNING = "#e0a526"
COLOR_BTN_DANGER = "#d63031"
COLOR_BTN_DISABLED = "#3a4a3b"
COLOR_BTN_TEXT = "#ffffff"
COLOR_TEXT = "#eeeeee"
COLOR_TEXT_DIM = "#888888"

# =============================================================================
# UI SETTINGS - LAYOUT
# =============================================================================

# Button sizes
BTN_HEIGHT = 36
BTN_FONT_SIZE = 13

# Spacing
PADDING_SMALL = 5
PADDING_MEDIUM = 10
PADDING_LARGE = 20

# =============================================================================
# FILE SETTINGS
# =============================================================================

# Supported audio formats (whatever SDL_mixer can decode)
SUPPORTED_FORMATS = ('.mp3', '.wav', '.ogg', '.flac')
