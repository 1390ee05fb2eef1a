# favourite_albums/pipeline/enrichment.py

"""Attach track listings to ranked albums, backed by a TTL cache.

Cache hits are applied first. Misses are fetched in a small thread pool
whose size is the concurrency limit; each worker sleeps a short random
jitter after every fetch. Results are written back into the cache on the
calling thread once the pool has drained.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Collection, Iterable, Mapping, MutableMapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from favourite_albums.domain.models import AlbumAggregate, CacheEntry, TrackDetail
from favourite_albums.spotify.client import (
    SpotifyClient,
    open_track_url,
    track_uri_from_url,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
DEFAULT_JITTER = (0.10, 0.15)


@dataclass(slots=True)
class EnrichmentReport:
    cached: list[str] = field(default_factory=list)
    fetched: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # album id -> error


def is_fresh(entry: CacheEntry | None, *, now: datetime, ttl: timedelta) -> bool:
    """A cache entry is reusable while non-empty and no older than ``ttl``."""
    if entry is None or not entry.tracks:
        return False
    return now - entry.fetched_utc <= ttl


def plan_enrichment(
    albums: Mapping[str, AlbumAggregate],
    album_ids: Iterable[str],
    cache: Mapping[str, CacheEntry],
    *,
    now: datetime,
    ttl: timedelta,
    report: EnrichmentReport | None = None,
) -> list[str]:
    """Apply cache hits to ``albums``; return the ids that must be fetched."""
    needs_fetch: list[str] = []
    for album_id in album_ids:
        entry = cache.get(album_id)
        if is_fresh(entry, now=now, ttl=ttl):
            albums[album_id].tracks = [_copy_track(t) for t in entry.tracks]  # type: ignore[union-attr]
            if report is not None:
                report.cached.append(album_id)
        else:
            needs_fetch.append(album_id)
    return needs_fetch


def fetch_tracklist(
    client: SpotifyClient,
    album_id: str,
    *,
    excluded: Collection[str],
) -> list[TrackDetail]:
    """Fetch one album's tracks, minus excluded ones, sorted by track number."""
    tracks = [
        TrackDetail(number=t.number, name=t.name, url=open_track_url(t.uri))
        for t in client.iter_album_tracks(album_id)
        if t.uri not in excluded
    ]
    tracks.sort(key=lambda t: t.number)
    return tracks


def fetch_tracklists(
    client: SpotifyClient,
    album_ids: list[str],
    *,
    excluded: Collection[str],
    max_workers: int = DEFAULT_MAX_WORKERS,
    jitter: tuple[float, float] = DEFAULT_JITTER,
    sleep: Callable[[float], None] = time.sleep,
    report: EnrichmentReport | None = None,
) -> dict[str, list[TrackDetail]]:
    """Fetch track lists concurrently.

    A failing album is logged and recorded in ``report.failed``; it does not
    stop the others. Every submitted fetch is awaited before returning.
    """
    if not album_ids:
        return {}

    def _work(album_id: str) -> list[TrackDetail]:
        try:
            return fetch_tracklist(client, album_id, excluded=excluded)
        finally:
            sleep(random.uniform(*jitter))

    fetched: dict[str, list[TrackDetail]] = {}
    done = 0
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {executor.submit(_work, album_id): album_id for album_id in album_ids}
        for future in as_completed(futures):
            album_id = futures[future]
            done += 1
            try:
                fetched[album_id] = future.result()
            except Exception as exc:  # noqa: BLE001 - isolate per album
                logger.error("Failed to fetch tracks for album %s: %s", album_id, exc)
                if report is not None:
                    report.failed[album_id] = str(exc)
                continue

            if report is not None:
                report.fetched.append(album_id)
            if done % 10 == 0 or done == len(album_ids):
                logger.info("Fetched %d/%d albums.", done, len(album_ids))

    return fetched


def apply_tracklists(
    albums: Mapping[str, AlbumAggregate],
    fetched: Mapping[str, list[TrackDetail]],
    cache: MutableMapping[str, CacheEntry],
    *,
    now: datetime,
) -> None:
    for album_id, tracks in fetched.items():
        albums[album_id].tracks = [_copy_track(t) for t in tracks]
        cache[album_id] = CacheEntry(fetched_utc=now, tracks=tracks)


def annotate_stars(
    albums: Mapping[str, AlbumAggregate],
    album_ids: Iterable[str],
    rated_stars: Mapping[str, int],
) -> None:
    """Mark each displayed track with the best star tier it was rated in."""
    for album_id in album_ids:
        for track in albums[album_id].tracks:
            uri = track_uri_from_url(track.url)
            if uri is not None and uri in rated_stars:
                track.stars = rated_stars[uri]


def enrich_albums(
    client: SpotifyClient,
    albums: Mapping[str, AlbumAggregate],
    album_ids: Iterable[str],
    cache: MutableMapping[str, CacheEntry],
    *,
    excluded: Collection[str],
    rated_stars: Mapping[str, int],
    ttl: timedelta,
    now: datetime | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    jitter: tuple[float, float] = DEFAULT_JITTER,
    sleep: Callable[[float], None] = time.sleep,
) -> EnrichmentReport:
    """Cache lookup, concurrent backfill, then star annotation."""
    now = now or datetime.now(timezone.utc)
    ids = list(album_ids)
    report = EnrichmentReport()

    needs_fetch = plan_enrichment(albums, ids, cache, now=now, ttl=ttl, report=report)
    logger.info(
        "Preparing track lists for %d albums (cached %d, fetch %d).",
        len(ids),
        len(report.cached),
        len(needs_fetch),
    )

    fetched = fetch_tracklists(
        client,
        needs_fetch,
        excluded=excluded,
        max_workers=max_workers,
        jitter=jitter,
        sleep=sleep,
        report=report,
    )
    apply_tracklists(albums, fetched, cache, now=now)
    annotate_stars(albums, ids, rated_stars)

    if report.failed:
        logger.warning(
            "%d albums have no track list after failed fetches.", len(report.failed)
        )
    return report


def _copy_track(track: TrackDetail) -> TrackDetail:
    return TrackDetail(number=track.number, name=track.name, url=track.url)
