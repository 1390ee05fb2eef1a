# favourite_albums/marketplace/matcher.py

"""Search the marketplace for vinyl copies of ranked albums.

Pipeline per run:
    1) drop albums already purchased (id or normalized "artist | title")
    2) build one search query per album
    3) run queries in a small thread pool; a failing query yields nothing
    4) filter each result (currency, total ceiling, listing type, vinyl title)
    5) merge per-query results in query order, first listing id wins
    6) auctions first (cheapest, then soonest end), then fixed price
"""

from __future__ import annotations

import logging
import random
import re
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from favourite_albums.domain.models import (
    AlbumAggregate,
    MarketplaceListing,
    PlaylistTrack,
)
from favourite_albums.ebay.client import EbayClient

logger = logging.getLogger(__name__)

AUCTION_WINDOW = timedelta(days=2)
QUERY_KEYWORD = "vinyl"
DEFAULT_JITTER = (0.150, 0.225)

_TITLE_SEPARATORS = (" - ", ": ")
_NON_KEY_CHARS = re.compile(r"[^\w ']|_")

# Phrases that rule a listing out, checked against a space-padded lowercase title.
_HARD_EXCLUDES = (
    " cd ",
    " compact disc",
    "cassette",
    "tape",
    "minidisc",
    " md ",
    "dvd",
    "blu-ray",
    "vhs",
)
_SEVEN_INCH = ('7"', "7”", " 7in", " 7 in", "7-inch", " 7 inch")
_LP_HINTS = (" lp ", "(lp")
_SIZE_HINTS = ('12"', '10"')


# ---------------------------------------------------------------------------
# Album keys / purchased albums
# ---------------------------------------------------------------------------


def normalize_album_title(album: str) -> str:
    """Strip edition suffixes: ``"X (Deluxe)"``, ``"X - Remastered"``, ``"X: Live"``."""
    if not album or not album.strip():
        return ""
    cut = album.find(" (")
    if cut > 0:
        album = album[:cut]
    for sep in _TITLE_SEPARATORS:
        cut = album.find(sep)
        if cut > 0:
            album = album[:cut]
            break
    return album.strip()


def canon(text: str) -> str:
    """Lowercase, fold curly apostrophes, keep letters/digits/space/'."""
    if not text or not text.strip():
        return ""
    text = text.lower().replace("’", "'").strip()
    return _NON_KEY_CHARS.sub("", text)


def album_key(artist: str, album: str) -> str:
    return f"{canon(artist)} | {canon(normalize_album_title(album))}"


@dataclass(slots=True)
class PurchasedAlbums:
    album_ids: set[str] = field(default_factory=set)
    keys: set[str] = field(default_factory=set)

    def contains(self, album: AlbumAggregate) -> bool:
        """Either an id match or a normalized-key match counts."""
        if album.album_id in self.album_ids:
            return True
        return album_key(album.primary_artist, album.name) in self.keys


def build_purchased_albums(tracks: Iterable[PlaylistTrack]) -> PurchasedAlbums:
    purchased = PurchasedAlbums()
    for track in tracks:
        album = track.album
        if album is None or not album.id:
            continue
        purchased.album_ids.add(album.id)
        artist = album.artists[0] if album.artists else ""
        purchased.keys.add(album_key(artist, album.name))

    logger.info(
        "Purchased: %d album ids, %d keys.",
        len(purchased.album_ids),
        len(purchased.keys),
    )
    return purchased


# ---------------------------------------------------------------------------
# Queries and filters
# ---------------------------------------------------------------------------


def make_search_query(album: AlbumAggregate) -> str:
    artist = album.primary_artist.strip().replace("’", "'")
    title = normalize_album_title(album.name.strip()).replace("’", "'")
    return f"{artist} {title} {QUERY_KEYWORD}"


def looks_like_vinyl(title: str | None) -> bool:
    """Heuristic: keep vinyl LPs, drop CDs, tapes, video and 7" singles."""
    if not title or not title.strip():
        return False
    padded = f" {title.lower()} "

    if any(term in padded for term in _HARD_EXCLUDES):
        return False
    if any(term in padded for term in _SEVEN_INCH):
        return False

    if "vinyl" in padded:
        return True
    if any(term in padded for term in _LP_HINTS):
        return True
    return any(term in padded for term in _SIZE_HINTS)


def listing_passes(
    listing: MarketplaceListing,
    *,
    currency: str,
    max_total: Decimal,
    now: datetime,
) -> bool:
    if listing.currency.upper() != currency.upper():
        return False
    if listing.total > max_total:
        return False

    if listing.is_auction:
        if listing.end_time is None or listing.end_time > now + AUCTION_WINDOW:
            return False
    elif not listing.is_fixed_price:
        return False

    return looks_like_vinyl(listing.title)


def order_listings(
    listings: Iterable[MarketplaceListing], *, max_results: int
) -> list[MarketplaceListing]:
    """Auctions (cheapest, then ending soonest) before fixed-price (cheapest)."""
    auctions: list[MarketplaceListing] = []
    buy_now: list[MarketplaceListing] = []
    for listing in listings:
        (auctions if listing.is_auction else buy_now).append(listing)

    far_future = datetime.max.replace(tzinfo=timezone.utc)
    auctions.sort(key=lambda i: (i.total, i.end_time or far_future))
    buy_now.sort(key=lambda i: i.total)
    return (auctions + buy_now)[:max_results]


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MatchResult:
    listings: list[MarketplaceListing] = field(default_factory=list)
    searched_albums: list[AlbumAggregate] = field(default_factory=list)
    failed_queries: dict[str, str] = field(default_factory=dict)  # query -> error


def select_albums(
    albums: Iterable[AlbumAggregate],
    purchased: PurchasedAlbums,
    *,
    album_limit: int,
) -> list[AlbumAggregate]:
    """Ranked albums minus purchased ones, then capped."""
    return [a for a in albums if not purchased.contains(a)][:album_limit]


def match_listings(
    client: EbayClient,
    albums: Sequence[AlbumAggregate],
    *,
    purchased: PurchasedAlbums | None = None,
    currency: str,
    max_total: Decimal,
    max_results: int,
    album_limit: int,
    limit_per_page: int = 50,
    max_pages: int = 2,
    max_workers: int = 3,
    now: datetime | None = None,
    jitter: tuple[float, float] = DEFAULT_JITTER,
    sleep: Callable[[float], None] = time.sleep,
) -> MatchResult:
    now = now or datetime.now(timezone.utc)
    searched = select_albums(albums, purchased or PurchasedAlbums(), album_limit=album_limit)
    queries = [make_search_query(a) for a in searched]
    result = MatchResult(searched_albums=searched)

    logger.info(
        "Querying %d album terms (concurrency %d, total <= %s %s).",
        len(queries),
        max_workers,
        max_total,
        currency,
    )

    def _run(query: str) -> list[MarketplaceListing]:
        kept = [
            listing
            for listing in client.search(
                query, limit_per_page=limit_per_page, max_pages=max_pages
            )
            if listing_passes(listing, currency=currency, max_total=max_total, now=now)
        ]
        sleep(random.uniform(*jitter))
        return kept

    per_query: list[list[MarketplaceListing]] = [[] for _ in queries]
    if queries:
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            futures = {executor.submit(_run, q): index for index, q in enumerate(queries)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    per_query[index] = future.result()
                except Exception as exc:  # noqa: BLE001 - a failed query means no results
                    query = queries[index]
                    logger.warning(
                        "Query failed for '%s': %s: %s", query, type(exc).__name__, exc
                    )
                    result.failed_queries[query] = str(exc)

    unique: dict[str, MarketplaceListing] = {}
    for listings in per_query:
        for listing in listings:
            unique.setdefault(listing.item_id, listing)

    logger.info("Got %d unique listings after filtering.", len(unique))
    result.listings = order_listings(unique.values(), max_results=max_results)
    return result
