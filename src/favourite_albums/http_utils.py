# src/favourite_albums/http_utils.py

"""Shared HTTP helpers: timeouts and 429 handling."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 100.0
DEFAULT_RETRY_AFTER = 2


def retry_after_seconds(response: httpx.Response) -> int:
    """Seconds to wait after a 429: Retry-After (min 1), else 2."""
    raw = response.headers.get("Retry-After")
    if raw is None:
        return DEFAULT_RETRY_AFTER
    try:
        return max(int(raw), 1)
    except ValueError:
        return DEFAULT_RETRY_AFTER


def send_with_rate_limit(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying it for as long as the server answers 429.

    Only explicit rate limiting is retried; any other response, success or
    not, is returned to the caller. Network errors propagate.
    """
    while True:
        response = client.request(method, url, **kwargs)
        if response.status_code != 429:
            return response

        wait = retry_after_seconds(response)
        logger.warning("429 from %s. Waiting %ss then retrying.", url, wait)
        sleep(wait)
