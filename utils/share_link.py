"""
Shareable links for AB Loop Player.

Encodes the loop window, playback rate and optionally one bookmark into
URL query parameters so a practice setup can be sent to someone else:

    ?start=10.5&end=12.5&rate=0.75&bm=<base64 JSON>
"""

import json
import math
import base64
import binascii
import logging
from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qs

logger = logging.getLogger("ABLoop.ShareLink")


def _encode_bookmark(bookmark: dict) -> str:
    payload = {
        'name': bookmark.get('name'),
        'start': bookmark.get('start'),
        'end': bookmark.get('end'),
        'playback_rate': bookmark.get('playback_rate'),
        'annotation': bookmark.get('annotation', ''),
    }
    raw = json.dumps(payload, separators=(',', ':')).encode('utf-8')
    return base64.urlsafe_b64encode(raw).decode('ascii')


def _decode_bookmark(value: str) -> Optional[dict]:
    try:
        raw = base64.urlsafe_b64decode(value.encode('ascii'))
        data = json.loads(raw.decode('utf-8'))
    except (binascii.Error, ValueError, UnicodeError) as e:
        logger.warning(f"Could not decode shared bookmark: {e}")
        return None
    return data if isinstance(data, dict) else None


def _parse_float(params, key) -> Optional[float]:
    values = params.get(key)
    if not values:
        return None
    try:
        value = float(values[0])
    except ValueError:
        logger.warning(f"Ignoring malformed '{key}' parameter: {values[0]!r}")
        return None
    return value if math.isfinite(value) else None


def generate_share_link(base_url: str, window=None, playback_rate: float = 1.0,
                        bookmark: Optional[dict] = None) -> str:
    """
    Build a link carrying the current loop settings.

    Args:
        base_url: Page/app URL the parameters are appended to (existing query is replaced)
        window: LoopWindow or None
        playback_rate: Omitted from the link when 1.0
        bookmark: Bookmark dict (see LoopBookmark.to_dict) or None

    Returns:
        The full URL
    """
    params = []
    if window is not None:
        params.append(('start', repr(float(window.start))))
        params.append(('end', repr(float(window.end))))
    if playback_rate and playback_rate != 1.0:
        params.append(('rate', repr(float(playback_rate))))
    if bookmark:
        params.append(('bm', _encode_bookmark(bookmark)))

    scheme, netloc, path, _query, _fragment = urlsplit(base_url)
    return urlunsplit((scheme, netloc, path, urlencode(params), ''))


def parse_share_link(url: str) -> dict:
    """
    Extract loop settings from a shared link.

    Returns:
        Dict with any of 'loop_start', 'loop_end', 'playback_rate', 'bookmark'.
        Missing or malformed parameters are simply absent.
    """
    params = parse_qs(urlsplit(url).query)
    result = {}

    start = _parse_float(params, 'start')
    if start is not None:
        result['loop_start'] = start

    end = _parse_float(params, 'end')
    if end is not None:
        result['loop_end'] = end

    rate = _parse_float(params, 'rate')
    if rate is not None:
        result['playback_rate'] = rate

    if params.get('bm'):
        bookmark = _decode_bookmark(params['bm'][0])
        if bookmark is not None:
            result['bookmark'] = bookmark

    return result
