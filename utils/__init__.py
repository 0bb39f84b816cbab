"""
Utility functions for AB Loop Player.
"""

from .formatting import format_time, parse_time, format_duration
from .share_link import generate_share_link, parse_share_link

__all__ = [
    'format_time',
    'parse_time',
    'format_duration',
    'generate_share_link',
    'parse_share_link',
]
