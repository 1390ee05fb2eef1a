# favourite_albums/pipeline/ranking.py

"""Deterministic ordering of album aggregates."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from favourite_albums.domain.models import AlbumAggregate

FIRST_YEAR = 2000
PER_YEAR = 10


def rank_key(album: AlbumAggregate) -> tuple[float, int, int, str]:
    """Sort key: raw percent, 5★ count and track count descending, then name."""
    return (
        -album.raw_percent,
        -album.star_counts.get(5, 0),
        -album.count,
        album.name,
    )


def rank_albums(albums: Iterable[AlbumAggregate]) -> list[AlbumAggregate]:
    """Return eligible albums (denominator > 0) in rank order."""
    return sorted((a for a in albums if a.is_eligible), key=rank_key)


@dataclass(slots=True)
class Rankings:
    top: list[AlbumAggregate]
    by_year: dict[int, list[AlbumAggregate]] = field(default_factory=dict)
    total_eligible: int = 0

    def detail_album_ids(self) -> list[str]:
        """Album ids needing track listings, in first-seen order."""
        ids: dict[str, None] = dict.fromkeys(a.album_id for a in self.top)
        for year in sorted(self.by_year, reverse=True):
            for album in self.by_year[year]:
                ids.setdefault(album.album_id, None)
        return list(ids)


def build_rankings(
    albums: Iterable[AlbumAggregate],
    *,
    top_n: int,
    current_year: int,
    first_year: int = FIRST_YEAR,
    per_year: int = PER_YEAR,
) -> Rankings:
    """Global top-N plus a top list for every year from first_year on.

    Year lists are drawn from all eligible albums, not just the top-N, and
    every year in range is present even when empty.
    """
    ranked = rank_albums(albums)

    by_year: dict[int, list[AlbumAggregate]] = {
        year: [] for year in range(current_year, first_year - 1, -1)
    }
    for album in ranked:
        year_list = by_year.get(album.release_year) if album.release_year else None
        if year_list is not None and len(year_list) < per_year:
            year_list.append(album)

    return Rankings(
        top=ranked[:top_n],
        by_year=by_year,
        total_eligible=len(ranked),
    )
