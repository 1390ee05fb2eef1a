# favourite_albums/pipeline/aggregation.py

"""Fold rated playlist tracks into per-album weighted scores."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from favourite_albums.domain.models import (
    AlbumAggregate,
    ExclusionSet,
    PlaylistTrack,
)

logger = logging.getLogger(__name__)

# Indexed by star value; 0 is unused.
STAR_WEIGHTS: tuple[float, ...] = (0.0, 0.10, 0.30, 0.70, 1.00, 1.20)

INELIGIBLE_ALBUM_TYPES = frozenset({"single", "compilation"})


@dataclass(slots=True)
class TierStats:
    stars: int
    weight: float
    fetched: int = 0
    included: int = 0
    skipped_invalid: int = 0
    skipped_non_album: int = 0
    skipped_excluded: int = 0
    skipped_duplicate: int = 0


@dataclass(slots=True)
class AggregationResult:
    albums: dict[str, AlbumAggregate] = field(default_factory=dict)
    rated_stars: dict[str, int] = field(default_factory=dict)  # track uri -> best star
    tiers: list[TierStats] = field(default_factory=list)


def star_weight(stars: int) -> float:
    return STAR_WEIGHTS[min(max(stars, 1), 5)]


def aggregate_ratings(
    tiers: Mapping[int, Iterable[PlaylistTrack]],
    exclusions: ExclusionSet,
) -> AggregationResult:
    """Aggregate star tiers into album records.

    Tiers are processed from 5★ down to 1★. The first tier to claim a track
    keeps it, so a track rated in several tiers counts once, at its highest
    weight. Denominators are applied before returning.
    """
    result = AggregationResult()
    seen: set[str] = set()

    for stars in sorted(tiers, reverse=True):
        stats = TierStats(stars=stars, weight=star_weight(stars))
        for track in tiers[stars]:
            stats.fetched += 1
            _fold_track(result, track, stars, stats, exclusions, seen)

        result.tiers.append(stats)
        logger.info(
            "%d★: fetched %d, included %d, skipped excluded %d, dup %d, "
            "non-album %d, invalid %d",
            stars,
            stats.fetched,
            stats.included,
            stats.skipped_excluded,
            stats.skipped_duplicate,
            stats.skipped_non_album,
            stats.skipped_invalid,
        )

    apply_denominators(result.albums.values(), exclusions)
    return result


def _fold_track(
    result: AggregationResult,
    track: PlaylistTrack,
    stars: int,
    stats: TierStats,
    exclusions: ExclusionSet,
    seen: set[str],
) -> None:
    album = track.album
    if album is None or not album.id or not track.is_valid_track:
        stats.skipped_invalid += 1
        return

    if (album.album_type or "").lower() in INELIGIBLE_ALBUM_TYPES:
        stats.skipped_non_album += 1
        return

    uri: str = track.uri  # type: ignore[assignment]
    if uri in exclusions:
        stats.skipped_excluded += 1
        return
    if uri in seen:
        stats.skipped_duplicate += 1
        return
    seen.add(uri)

    agg = result.albums.get(album.id)
    if agg is None:
        agg = AlbumAggregate(
            album_id=album.id,
            name=album.name,
            artists=list(album.artists),
            image_url=album.image_url,
            uri=album.uri,
            total_tracks=album.total_tracks,
            release_year=album.release_year,
        )
        result.albums[album.id] = agg
    elif agg.total_tracks == 0 and album.total_tracks > 0:
        agg.total_tracks = album.total_tracks

    agg.count += 1
    agg.score += stars
    agg.star_counts[stars] = agg.star_counts.get(stars, 0) + 1
    agg.weighted_sum += stats.weight

    if result.rated_stars.get(uri, 0) < stars:
        result.rated_stars[uri] = stars
    stats.included += 1


def apply_denominators(
    albums: Iterable[AlbumAggregate], exclusions: ExclusionSet
) -> None:
    """denominator = max(0, total tracks - excluded tracks on the album)."""
    for agg in albums:
        agg.denominator = max(0, agg.total_tracks - exclusions.excluded_on(agg.album_id))
