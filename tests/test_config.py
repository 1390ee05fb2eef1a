from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from favourite_albums.config import (
    ConfigError,
    load_settings,
    normalize_playlist_id,
    parse_star_playlists,
)

PID = "37i9dQZF1DXcBWIGoYBM5M"  # 22 chars


def _env(**overrides: str) -> dict[str, str]:
    env = {
        "SPOTIFY_CLIENT_ID": "cid",
        "SPOTIFY_CLIENT_SECRET": "secret",
        "SPOTIFY_REFRESH_TOKEN": "refresh",
        "OUTPUT_DIR": "out",
        "STAR_PLAYLISTS": ",".join(f"{s}:{PID}" for s in range(5, 0, -1)),
        "FILLER_PLAYLIST_ID": PID,
    }
    env.update(overrides)
    return env


def test_defaults() -> None:
    settings = load_settings(_env())

    assert settings.output_dir == Path("out")
    assert set(settings.star_playlists) == {1, 2, 3, 4, 5}
    assert settings.top_n == 250
    assert settings.cache_ttl_days == 30
    assert settings.detail_fetch_concurrency == 4
    assert settings.excluded_playlist_id is None
    assert settings.ebay is None
    assert settings.exclusion_playlist_ids == [PID]
    assert settings.cache_path == Path("out") / "cache" / "albums.jsonl"


def test_invalid_integers_fall_back_to_defaults() -> None:
    settings = load_settings(_env(TOP_N="-3", CACHE_TTL_DAYS="soon"))
    assert settings.top_n == 250
    assert settings.cache_ttl_days == 30


def test_ebay_settings_only_with_credentials() -> None:
    settings = load_settings(
        _env(EBAY_CLIENT_ID="e", EBAY_CLIENT_SECRET="s", EBAY_MAX_PRICE_GBP="30.5")
    )
    assert settings.ebay is not None
    assert settings.ebay.max_total == Decimal("30.5")
    assert settings.ebay.marketplace_id == "EBAY_GB"
    assert settings.ebay.query_concurrency == 3

    assert load_settings(_env(EBAY_CLIENT_ID="e")).ebay is None


@pytest.mark.parametrize("raw", ["NaN", "sNaN", "Infinity", "-5", "0", "cheap"])
def test_unusable_price_ceiling_falls_back_to_default(raw: str) -> None:
    settings = load_settings(
        _env(EBAY_CLIENT_ID="e", EBAY_CLIENT_SECRET="s", EBAY_MAX_PRICE_GBP=raw)
    )
    assert settings.ebay is not None
    assert settings.ebay.max_total == Decimal("25")


def test_missing_required_variable() -> None:
    env = _env()
    del env["SPOTIFY_REFRESH_TOKEN"]
    with pytest.raises(ConfigError, match="SPOTIFY_REFRESH_TOKEN"):
        load_settings(env)


def test_bad_playlist_ids_rejected() -> None:
    with pytest.raises(ConfigError, match="FILLER_PLAYLIST_ID"):
        load_settings(_env(FILLER_PLAYLIST_ID="short"))
    with pytest.raises(ConfigError, match="PURCHASED_PLAYLIST_ID"):
        load_settings(_env(PURCHASED_PLAYLIST_ID="nope!"))


def test_parse_star_playlists_requires_all_tiers() -> None:
    with pytest.raises(ConfigError, match="1..5"):
        parse_star_playlists("5:a,4:b,3:c,2:d")
    with pytest.raises(ConfigError, match="Invalid STAR_PLAYLISTS segment"):
        parse_star_playlists("6:a")
    with pytest.raises(ConfigError):
        parse_star_playlists("five")

    parsed = parse_star_playlists(" 5:a , 4:b,3:c,2:d,1:e ")
    assert parsed == {5: "a", 4: "b", 3: "c", 2: "d", 1: "e"}


@pytest.mark.parametrize(
    "raw",
    [
        PID,
        f" '{PID}' ",
        f"spotify:playlist:{PID}",
        f"https://open.spotify.com/playlist/{PID}?si=abc",
    ],
)
def test_normalize_playlist_id(raw: str) -> None:
    assert normalize_playlist_id(raw) == PID
