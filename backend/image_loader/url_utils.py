"""
Cache-Busting URL Utilities

Pure helpers that make every request look unique to browser and
intermediary caches.
"""

import time
from typing import Dict, Optional, Union

import httpx

CACHE_BUST_PARAM = "v"
MANAGER_CACHE_BUST_PARAM = "_cb"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

Token = Union[int, str]


def current_millis() -> int:
    return int(time.time() * 1000)


def add_cache_buster(url: str, token: Optional[Token] = None, param: str = CACHE_BUST_PARAM) -> str:
    """
    Append a cache-busting query parameter to a URL.

    Repeated calls without a token append a fresh timestamp each time;
    with an explicit token the output is deterministic.

    Args:
        url: Absolute or relative URL
        token: Busting value, current time in milliseconds if omitted
        param: Query parameter name

    Returns:
        The busted URL, or "" for an empty URL.
    """
    if not url:
        return ""

    buster = current_millis() if token is None else token
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{param}={buster}"


def set_cache_buster(url: str, param: str = MANAGER_CACHE_BUST_PARAM, token: Optional[Token] = None) -> str:
    """Set (add or replace) the busting parameter, keeping every other query parameter."""
    if not url:
        return ""

    buster = current_millis() if token is None else token
    return str(httpx.URL(url).copy_set_param(param, str(buster)))


def strip_query(url: str) -> str:
    return url.split("?", 1)[0]


def reload_source(url: str, token: Optional[Token] = None) -> str:
    """Drop any existing query string and bust the bare URL."""
    if not url:
        return ""
    return add_cache_buster(strip_query(url), token)


def add_no_cache_headers(headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    return {**(headers or {}), **NO_CACHE_HEADERS}
