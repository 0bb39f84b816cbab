#!/usr/bin/env python3
"""
AB Loop Player - practice any passage of a song on repeat

Loads an audio file, lets you mark an A-B section, snap it to the beat,
slow it down and save it as a bookmark.

Usage:
    python main.py [FILE] [--debug]
"""

import os
import sys

# Must be done BEFORE importing pygame (which happens in backend imports)
os.environ['PYGAME_HIDE_SUPPORT_PROMPT'] = "1"

import logging
import argparse
from datetime import datetime

from config import LOG_DIR

# =============================================================================
# UTILS
# =============================================================================

def setup_logging(debug: bool = False) -> logging.Logger:
    os.makedirs(LOG_DIR, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(LOG_DIR, f"abloop_{timestamp}.log")

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout), logging.FileHandler(log_file)]
    )
    return logging.getLogger("ABLoop")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="AB Loop Player")
    parser.add_argument("file", nargs="?", default=None, help="Audio file to open")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main():
    args = parse_args()
    logger = setup_logging(debug=args.debug)
    logger.info("AB Loop Player Starting")

    # Late imports so logging is configured before pygame / Tk come up
    from backend.audio_engine import AudioEngine
    from frontend.app import ABLoopApp

    try:
        engine = AudioEngine()
    except Exception as e:
        logger.exception(f"Could not open audio device: {e}")
        sys.exit(1)

    app = ABLoopApp(engine)
    if args.file:
        app.load_file(args.file)

    try:
        app.run()
    except Exception as e:
        logger.exception(f"Critical Error: {e}")
        sys.exit(1)

    logger.info("AB Loop Player Exiting")


if __name__ == "__main__":
    main()
