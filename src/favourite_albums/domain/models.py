# favourite_albums/domain/models.py

"""Core domain models for rated tracks, album aggregates and listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

TRACK_URI_PREFIX = "spotify:track:"


@dataclass(slots=True)
class AlbumRef:
    """Album fields carried on every playlist track."""

    id: str | None
    name: str = ""
    artists: list[str] = field(default_factory=list)
    image_url: str = ""
    uri: str = ""
    album_type: str | None = None  # "album" | "single" | "compilation"
    total_tracks: int = 0
    release_date: str | None = None  # "YYYY", "YYYY-MM" or "YYYY-MM-DD"
    release_date_precision: str | None = None

    @property
    def release_year(self) -> int | None:
        if self.release_date and len(self.release_date) >= 4:
            try:
                return int(self.release_date[:4])
            except ValueError:
                return None
        return None


@dataclass(slots=True)
class PlaylistTrack:
    """A single track as returned from a playlist listing."""

    uri: str | None
    name: str = ""
    album: AlbumRef | None = None

    @property
    def is_valid_track(self) -> bool:
        return bool(self.uri) and self.uri.startswith(TRACK_URI_PREFIX)


@dataclass(slots=True)
class AlbumTrack:
    """A track as listed on an album's detail endpoint."""

    number: int
    name: str
    uri: str


@dataclass(slots=True)
class TrackDetail:
    """One track shown under an enriched album."""

    number: int
    name: str
    url: str  # https://open.spotify.com/track/...
    stars: int | None = None


@dataclass(slots=True)
class ExclusionSet:
    track_uris: set[str] = field(default_factory=set)
    excluded_per_album: dict[str, int] = field(default_factory=dict)

    def __contains__(self, uri: object) -> bool:
        return uri in self.track_uris

    def excluded_on(self, album_id: str) -> int:
        return self.excluded_per_album.get(album_id, 0)


@dataclass(slots=True)
class AlbumAggregate:
    """Aggregated ratings for one album."""

    album_id: str
    name: str
    artists: list[str]
    image_url: str
    uri: str  # spotify:album:...
    total_tracks: int = 0
    release_year: int | None = None

    count: int = 0  # unique rated tracks counted
    score: int = 0  # legacy sum of star values
    star_counts: dict[int, int] = field(
        default_factory=lambda: {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
    )
    weighted_sum: float = 0.0
    denominator: int = 0

    tracks: list[TrackDetail] = field(default_factory=list)

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists else ""

    @property
    def raw_percent(self) -> float:
        """Uncapped percentage; used for ranking."""
        if self.denominator <= 0:
            return 0.0
        return self.weighted_sum / self.denominator * 100.0

    @property
    def percent(self) -> float:
        """Display percentage, capped at 100."""
        return min(self.raw_percent, 100.0)

    @property
    def is_eligible(self) -> bool:
        return self.denominator > 0

    @property
    def open_url(self) -> str:
        return f"https://open.spotify.com/album/{self.album_id}"


@dataclass(slots=True)
class CacheEntry:
    fetched_utc: datetime
    tracks: list[TrackDetail] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class MarketplaceListing:
    """A single marketplace search result."""

    item_id: str
    title: str
    url: str
    image_url: str | None
    currency: str
    price: Decimal  # current bid for auctions, else listing price
    shipping: Decimal
    total: Decimal  # price + shipping when currencies match
    end_time: datetime | None  # auctions only
    seller: str | None
    buying_options: frozenset[str] = frozenset()

    @property
    def is_auction(self) -> bool:
        return "AUCTION" in self.buying_options

    @property
    def is_fixed_price(self) -> bool:
        return "FIXED_PRICE" in self.buying_options
