# favourite_albums/io/output.py

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from favourite_albums.domain.models import (
    AlbumAggregate,
    MarketplaceListing,
    TrackDetail,
)
from favourite_albums.pipeline.ranking import Rankings


def write_jsonl(path: Path, objects: Iterable[dict[str, Any]]) -> int:
    """Write one JSON object per line, replacing the file. Returns the count."""
    lines = [json.dumps(obj, ensure_ascii=False) for obj in objects]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)


def _track_to_raw(track: TrackDetail) -> dict[str, Any]:
    return {
        "number": track.number,
        "name": track.name,
        "url": track.url,
        "stars": track.stars,
    }


def album_to_raw(album: AlbumAggregate, *, rank: int | None = None) -> dict[str, Any]:
    """Convert an AlbumAggregate into a JSON-serialisable dict."""
    return {
        "rank": rank,
        "album_id": album.album_id,
        "name": album.name,
        "artists": album.artists,
        "image_url": album.image_url,
        "uri": album.uri,
        "url": album.open_url,
        "release_year": album.release_year,
        "total_tracks": album.total_tracks,
        "denominator": album.denominator,
        "count": album.count,
        "star_counts": {str(k): v for k, v in sorted(album.star_counts.items())},
        "weighted_sum": round(album.weighted_sum, 6),
        "raw_percent": round(album.raw_percent, 4),
        "percent": round(album.percent, 4),
        "tracks": [_track_to_raw(t) for t in album.tracks],
    }


def listing_to_raw(listing: MarketplaceListing) -> dict[str, Any]:
    """Convert a MarketplaceListing into a JSON-serialisable dict."""
    return {
        "item_id": listing.item_id,
        "title": listing.title,
        "url": listing.url,
        "image_url": listing.image_url,
        "currency": listing.currency,
        "price": str(listing.price),
        "shipping": str(listing.shipping),
        "total": str(listing.total),
        "end_time": listing.end_time.isoformat() if listing.end_time else None,
        "seller": listing.seller,
        "is_auction": listing.is_auction,
        "buying_options": sorted(listing.buying_options),
    }


def write_albums(path: Path, albums: Iterable[AlbumAggregate]) -> int:
    return write_jsonl(
        path,
        (album_to_raw(a, rank=i) for i, a in enumerate(albums, start=1)),
    )


def write_rankings(output_dir: Path, rankings: Rankings) -> int:
    """Write the global list plus one file per year. Returns the year count."""
    write_albums(output_dir / "albums.jsonl", rankings.top)
    years_dir = output_dir / "years"
    for year, albums in rankings.by_year.items():
        write_albums(years_dir / f"{year}.jsonl", albums)
    return len(rankings.by_year)


def write_listings(path: Path, listings: Iterable[MarketplaceListing]) -> int:
    return write_jsonl(path, (listing_to_raw(i) for i in listings))


def write_searched_albums(path: Path, albums: Iterable[AlbumAggregate]) -> int:
    return write_jsonl(
        path,
        (
            {
                "album_id": a.album_id,
                "name": a.name,
                "artist": a.primary_artist,
                "url": a.uri or a.open_url,
            }
            for a in albums
        ),
    )
