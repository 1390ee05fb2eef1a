from __future__ import annotations

import threading
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from favourite_albums.domain.models import (
    AlbumAggregate,
    AlbumRef,
    MarketplaceListing,
    PlaylistTrack,
)
from favourite_albums.marketplace.matcher import (
    PurchasedAlbums,
    album_key,
    build_purchased_albums,
    canon,
    listing_passes,
    looks_like_vinyl,
    make_search_query,
    match_listings,
    normalize_album_title,
    order_listings,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
CEILING = Decimal("25")


def _listing(
    item_id: str = "1",
    *,
    title: str = "Artist - Album 12\" vinyl LP",
    total: str = "20.00",
    currency: str = "GBP",
    options: tuple[str, ...] = ("FIXED_PRICE",),
    end: datetime | None = None,
) -> MarketplaceListing:
    return MarketplaceListing(
        item_id=item_id,
        title=title,
        url=f"https://ebay.example/{item_id}",
        image_url=None,
        currency=currency,
        price=Decimal(total),
        shipping=Decimal("0"),
        total=Decimal(total),
        end_time=end,
        seller=None,
        buying_options=frozenset(options),
    )


def _album(album_id: str, name: str = "Album", artist: str = "Artist") -> AlbumAggregate:
    return AlbumAggregate(
        album_id=album_id, name=name, artists=[artist], image_url="", uri=""
    )


def _passes(listing: MarketplaceListing) -> bool:
    return listing_passes(listing, currency="GBP", max_total=CEILING, now=NOW)


class FakeEbay:
    def __init__(self, results: dict[str, list[MarketplaceListing]], failing: set[str] | None = None) -> None:
        self.results = results
        self.failing = failing or set()
        self.queries: list[str] = []
        self._lock = threading.Lock()

    def search(self, query: str, *, limit_per_page: int, max_pages: int) -> Iterator[MarketplaceListing]:
        with self._lock:
            self.queries.append(query)
        if query in self.failing:
            raise RuntimeError("search exploded")
        yield from self.results.get(query, [])


# ---------------------------------------------------------------------------
# normalization / keys
# ---------------------------------------------------------------------------


def test_normalize_album_title_strips_edition_suffixes() -> None:
    assert normalize_album_title("OK Computer (Remastered)") == "OK Computer"
    assert normalize_album_title("Blue - 2012 Remaster") == "Blue"
    assert normalize_album_title("Live: At Leeds") == "Live"
    assert normalize_album_title("Plain") == "Plain"
    assert normalize_album_title("   ") == ""


def test_canon_folds_case_and_punctuation() -> None:
    assert canon("Guns N’ Roses!") == "guns n' roses"
    assert canon("AC/DC") == "acdc"


def test_album_key_matches_reissues() -> None:
    assert album_key("Radiohead", "Kid A (Deluxe)") == album_key("RADIOHEAD", "Kid A")


def test_purchased_matches_by_id_or_key() -> None:
    purchased = build_purchased_albums(
        [
            PlaylistTrack(
                uri="spotify:track:1",
                album=AlbumRef(id="owned", name="Blue (Remastered)", artists=["Joni Mitchell"]),
            ),
            PlaylistTrack(uri="spotify:track:2", album=None),
        ]
    )

    assert purchased.contains(_album("owned", "Anything", "Anyone"))
    assert purchased.contains(_album("reissue", "Blue", "joni mitchell"))
    assert not purchased.contains(_album("other", "Court and Spark", "Joni Mitchell"))


def test_make_search_query() -> None:
    album = _album("a", "Don’t Stop (Deluxe Edition)", "Artist’s Band")
    assert make_search_query(album) == "Artist's Band Don't Stop vinyl"


# ---------------------------------------------------------------------------
# vinyl classifier
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "title",
    [
        "Radiohead Kid A vinyl",
        "Kid A LP",
        "LP Kid A",
        "Kid A (LP, 2000)",
        'Kid A 12" record',
        'Kid A 10" EP',
    ],
)
def test_vinyl_titles_accepted(title: str) -> None:
    assert looks_like_vinyl(title)


@pytest.mark.parametrize(
    "title",
    [
        "Kid A CD vinyl",
        "Kid A compact disc",
        "Kid A cassette LP",
        "Kid A DVD",
        "Kid A VHS",
        "Kid A blu-ray",
        'Idioteque 7" vinyl single',
        "Idioteque 7-inch vinyl",
        "Kid A",
        "",
        None,
    ],
)
def test_non_vinyl_titles_rejected(title: str | None) -> None:
    assert not looks_like_vinyl(title)


# ---------------------------------------------------------------------------
# listing filter
# ---------------------------------------------------------------------------


def test_price_ceiling_is_inclusive() -> None:
    assert _passes(_listing(total="25.00"))
    assert not _passes(_listing(total="25.01"))


def test_currency_must_match() -> None:
    assert not _passes(_listing(currency="EUR"))
    assert _passes(_listing(currency="gbp"))


def test_auction_window_boundary() -> None:
    window = timedelta(days=2)
    assert _passes(_listing(options=("AUCTION",), end=NOW + window))
    assert not _passes(_listing(options=("AUCTION",), end=NOW + window + timedelta(seconds=1)))
    assert not _passes(_listing(options=("AUCTION",), end=None))


def test_other_listing_types_dropped() -> None:
    assert not _passes(_listing(options=("BEST_OFFER",)))
    assert not _passes(_listing(options=()))


def test_non_vinyl_listing_dropped() -> None:
    assert not _passes(_listing(title="Album CD"))


# ---------------------------------------------------------------------------
# ordering and matching
# ---------------------------------------------------------------------------


def test_order_auctions_first_then_fixed_price() -> None:
    late = _listing("a-late", options=("AUCTION",), total="5", end=NOW + timedelta(hours=20))
    soon = _listing("a-soon", options=("AUCTION",), total="5", end=NOW + timedelta(hours=1))
    pricey = _listing("a-pricey", options=("AUCTION",), total="9", end=NOW)
    cheap_bin = _listing("f-cheap", total="1")
    dear_bin = _listing("f-dear", total="8")

    ordered = order_listings([dear_bin, late, pricey, cheap_bin, soon], max_results=10)

    assert [i.item_id for i in ordered] == ["a-soon", "a-late", "a-pricey", "f-cheap", "f-dear"]
    assert [i.item_id for i in order_listings(ordered, max_results=2)] == ["a-soon", "a-late"]


def test_match_dedups_across_queries_and_isolates_failures() -> None:
    albums = [_album("1", "First"), _album("2", "Second"), _album("3", "Third")]
    shared = _listing("dup", total="12")
    ebay = FakeEbay(
        {
            "Artist First vinyl": [shared, _listing("x", title="First CD")],
            "Artist Second vinyl": [_listing("dup", title="Second 12\" vinyl", total="1"), _listing("s", total="3")],
        },
        failing={"Artist Third vinyl"},
    )

    result = match_listings(
        ebay,  # type: ignore[arg-type]
        albums,
        currency="GBP",
        max_total=CEILING,
        max_results=10,
        album_limit=10,
        now=NOW,
        sleep=lambda _s: None,
    )

    assert [i.item_id for i in result.listings] == ["s", "dup"]
    assert result.listings[1] is shared
    assert set(result.failed_queries) == {"Artist Third vinyl"}
    assert sorted(ebay.queries) == sorted(make_search_query(a) for a in albums)


def test_match_skips_purchased_before_limit() -> None:
    albums = [_album("owned", "Owned"), _album("2", "Second"), _album("3", "Third")]
    purchased = PurchasedAlbums(album_ids={"owned"})
    ebay = FakeEbay({})

    result = match_listings(
        ebay,  # type: ignore[arg-type]
        albums,
        purchased=purchased,
        currency="GBP",
        max_total=CEILING,
        max_results=10,
        album_limit=1,
        now=NOW,
        sleep=lambda _s: None,
    )

    assert [a.album_id for a in result.searched_albums] == ["2"]
    assert ebay.queries == ["Artist Second vinyl"]
    assert result.listings == []
