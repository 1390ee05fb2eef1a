# favourite_albums/io/cache_store.py

"""Load and save the per-album track listing cache.

The cache is JSONL, one album per line::

    {"album_id": "...", "fetched_utc": "2025-01-01T00:00:00+00:00",
     "tracks": [{"number": 1, "name": "...", "url": "..."}]}

It can be read from a local path or an http(s) URL. Any failure while
loading degrades to an empty (or partial) cache.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from favourite_albums.domain.models import CacheEntry, TrackDetail
from favourite_albums.io.output import write_jsonl

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def load_album_cache(
    source: str | Path | None,
    *,
    http_client: httpx.Client | None = None,
) -> dict[str, CacheEntry]:
    """Load the cache from a path or URL. Never raises for I/O or parse errors."""
    if source is None or not str(source).strip():
        return {}

    source_str = str(source).strip()
    if source_str.startswith(("http://", "https://")):
        lines = _fetch_remote(source_str, http_client)
    else:
        lines = _read_local(Path(source_str))

    cache: dict[str, CacheEntry] = {}
    for obj in _iter_objects(lines, source_str):
        parsed = _entry_from_raw(obj)
        if parsed is None:
            logger.debug("Ignoring malformed cache line in %s", source_str)
            continue
        album_id, entry = parsed
        cache[album_id] = entry

    logger.info("Loaded %d cached albums from %s.", len(cache), source_str)
    return cache


def _read_local(path: Path) -> list[str]:
    if not path.exists():
        return []
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read album cache %s: %s", path, exc)
        return []


def _fetch_remote(url: str, http_client: httpx.Client | None) -> list[str]:
    client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT, follow_redirects=True)
    try:
        response = client.get(url)
        response.raise_for_status()
        return response.text.splitlines()
    except httpx.HTTPError as exc:
        logger.warning("Could not fetch album cache from %s: %s", url, exc)
        return []
    finally:
        if http_client is None:
            client.close()


def _iter_objects(lines: Iterable[str], source: str) -> Iterator[dict[str, Any]]:
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Skipping cache line %d in %s: %s", line_number, source, exc)
            continue
        if isinstance(obj, dict):
            yield obj


def save_album_cache(path: Path, cache: Mapping[str, CacheEntry]) -> int:
    """Write the cache, sorted by album id. Returns the number of entries."""
    return write_jsonl(
        path,
        (_entry_to_raw(album_id, cache[album_id]) for album_id in sorted(cache)),
    )


def _entry_to_raw(album_id: str, entry: CacheEntry) -> dict[str, Any]:
    return {
        "album_id": album_id,
        "fetched_utc": entry.fetched_utc.isoformat(),
        "tracks": [
            {"number": t.number, "name": t.name, "url": t.url} for t in entry.tracks
        ],
    }


def _entry_from_raw(raw: dict[str, Any]) -> tuple[str, CacheEntry] | None:
    try:
        album_id = raw["album_id"]
        fetched = datetime.fromisoformat(raw["fetched_utc"])
        tracks = [
            TrackDetail(number=int(t["number"]), name=t["name"], url=t["url"])
            for t in raw.get("tracks") or []
        ]
    except (KeyError, TypeError, ValueError):
        return None

    if not isinstance(album_id, str) or not album_id:
        return None
    if fetched.tzinfo is None:
        fetched = fetched.replace(tzinfo=timezone.utc)
    return album_id, CacheEntry(fetched_utc=fetched, tracks=tracks)
