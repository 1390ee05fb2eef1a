from __future__ import annotations

from favourite_albums.domain.models import AlbumAggregate
from favourite_albums.pipeline.ranking import build_rankings, rank_albums


def _album(
    album_id: str,
    *,
    name: str | None = None,
    weighted_sum: float = 1.0,
    denominator: int = 10,
    five: int = 0,
    count: int = 1,
    year: int | None = 2020,
) -> AlbumAggregate:
    album = AlbumAggregate(
        album_id=album_id,
        name=name or album_id,
        artists=["Artist"],
        image_url="",
        uri="",
        total_tracks=denominator,
        release_year=year,
        count=count,
        weighted_sum=weighted_sum,
        denominator=denominator,
    )
    album.star_counts[5] = five
    return album


def test_orders_by_uncapped_percent() -> None:
    capped = _album("capped", weighted_sum=12.0, denominator=10)  # 120%
    full = _album("full", weighted_sum=10.0, denominator=10)  # 100%
    half = _album("half", weighted_sum=5.0, denominator=10)

    ranked = rank_albums([half, full, capped])

    assert [a.album_id for a in ranked] == ["capped", "full", "half"]
    assert capped.percent == full.percent == 100.0


def test_tie_breaks() -> None:
    fewer_five = _album("a", five=1, count=5)
    more_five = _album("b", five=2, count=1)
    more_count = _album("c", five=1, count=6)

    ranked = rank_albums([fewer_five, more_five, more_count])

    assert [a.album_id for a in ranked] == ["b", "c", "a"]


def test_full_tie_is_broken_by_name() -> None:
    zebra = _album("1", name="Zebra")
    apple = _album("2", name="Apple")

    ranked = rank_albums([zebra, apple])

    assert [a.name for a in ranked] == ["Apple", "Zebra"]


def test_ineligible_albums_never_ranked() -> None:
    zero = _album("zero", weighted_sum=5.0, denominator=0)
    ok = _album("ok")

    rankings = build_rankings([zero, ok], top_n=10, current_year=2024)

    assert [a.album_id for a in rankings.top] == ["ok"]
    assert all(zero not in year for year in rankings.by_year.values())
    assert rankings.total_eligible == 1


def test_top_n_truncation() -> None:
    albums = [_album(str(i), weighted_sum=float(i)) for i in range(1, 6)]

    rankings = build_rankings(albums, top_n=2, current_year=2024)

    assert [a.album_id for a in rankings.top] == ["5", "4"]


def test_year_lists_cover_every_year_and_use_full_set() -> None:
    top = [_album(f"t{i}", weighted_sum=9.0 - i * 0.1, year=2020) for i in range(3)]
    outside_top = _album("old", weighted_sum=0.5, year=2003)
    no_year = _album("undated", weighted_sum=9.5, year=None)
    too_old = _album("ancient", weighted_sum=9.9, year=1975)

    rankings = build_rankings(
        top + [outside_top, no_year, too_old], top_n=2, current_year=2024
    )

    assert list(rankings.by_year) == list(range(2024, 1999, -1))
    assert rankings.by_year[2003] == [outside_top]
    assert rankings.by_year[2011] == []
    assert [a.album_id for a in rankings.by_year[2020]] == ["t0", "t1", "t2"]
    assert 1975 not in rankings.by_year


def test_year_lists_capped_at_ten() -> None:
    albums = [_album(f"y{i:02d}", weighted_sum=20.0 - i, year=2019) for i in range(15)]

    rankings = build_rankings(albums, top_n=1, current_year=2020)

    assert len(rankings.by_year[2019]) == 10
    assert rankings.by_year[2019][0].album_id == "y00"


def test_detail_album_ids_is_union() -> None:
    a = _album("a", weighted_sum=9.0, year=2021)
    b = _album("b", weighted_sum=8.0, year=2021)
    c = _album("c", weighted_sum=1.0, year=2005)

    rankings = build_rankings([a, b, c], top_n=1, current_year=2022)

    assert rankings.detail_album_ids() == ["a", "b", "c"]
