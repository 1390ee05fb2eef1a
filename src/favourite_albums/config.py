# favourite_albums/config.py

"""Shared configuration and environment setup."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

DEFAULT_TOP_N = 250
DEFAULT_CACHE_TTL_DAYS = 30
DEFAULT_DETAIL_FETCH_CONCURRENCY = 4

DEFAULT_EBAY_MARKETPLACE = "EBAY_GB"
DEFAULT_EBAY_DELIVERY_CC = "GB"
DEFAULT_EBAY_CURRENCY = "GBP"
DEFAULT_EBAY_MAX_PRICE = Decimal("25")
DEFAULT_EBAY_PAGES_PER_QUERY = 2
DEFAULT_EBAY_LIMIT_PER_PAGE = 50
DEFAULT_EBAY_QUERY_CONCURRENCY = 3
DEFAULT_EBAY_MAX_RESULTS = 400
DEFAULT_EBAY_ALBUM_LIMIT = 250

_BASE62_ID = re.compile(r"^[A-Za-z0-9]{22}$")
_PLAYLIST_URI_PREFIX = "spotify:playlist:"


class ConfigError(ValueError):
    """Raised for missing or malformed settings."""


@dataclass(frozen=True, slots=True)
class EbaySettings:
    client_id: str
    client_secret: str
    marketplace_id: str = DEFAULT_EBAY_MARKETPLACE
    delivery_country: str = DEFAULT_EBAY_DELIVERY_CC
    currency: str = DEFAULT_EBAY_CURRENCY
    max_total: Decimal = DEFAULT_EBAY_MAX_PRICE
    pages_per_query: int = DEFAULT_EBAY_PAGES_PER_QUERY
    limit_per_page: int = DEFAULT_EBAY_LIMIT_PER_PAGE
    query_concurrency: int = DEFAULT_EBAY_QUERY_CONCURRENCY
    max_results: int = DEFAULT_EBAY_MAX_RESULTS
    album_limit: int = DEFAULT_EBAY_ALBUM_LIMIT


@dataclass(frozen=True, slots=True)
class Settings:
    spotify_client_id: str
    spotify_client_secret: str
    spotify_refresh_token: str
    output_dir: Path
    star_playlists: dict[int, str]
    filler_playlist_id: str
    excluded_playlist_id: str | None = None
    purchased_playlist_id: str | None = None
    top_n: int = DEFAULT_TOP_N
    cache_source: str | None = None
    cache_ttl_days: int = DEFAULT_CACHE_TTL_DAYS
    detail_fetch_concurrency: int = DEFAULT_DETAIL_FETCH_CONCURRENCY
    ebay: EbaySettings | None = None

    @property
    def exclusion_playlist_ids(self) -> list[str]:
        ids = [self.filler_playlist_id]
        if self.excluded_playlist_id:
            ids.append(self.excluded_playlist_id)
        return ids

    @property
    def cache_path(self) -> Path:
        """Where the cache is written at the end of a run."""
        return self.output_dir / "cache" / "albums.jsonl"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build and validate Settings from environment variables.

    Raises:
        ConfigError: if a required variable is missing or an id is malformed.
    """
    env = os.environ if environ is None else environ

    star_playlists = {
        stars: normalize_playlist_id(pid)
        for stars, pid in parse_star_playlists(_require(env, "STAR_PLAYLISTS")).items()
    }
    for stars, pid in star_playlists.items():
        require_base62(f"{stars}★ in STAR_PLAYLISTS", pid)

    filler_id = normalize_playlist_id(_require(env, "FILLER_PLAYLIST_ID"))
    require_base62("FILLER_PLAYLIST_ID", filler_id)

    excluded_id = _optional_playlist_id(env, "EXCLUDED_PLAYLIST_ID")
    purchased_id = _optional_playlist_id(env, "PURCHASED_PLAYLIST_ID")

    return Settings(
        spotify_client_id=_require(env, "SPOTIFY_CLIENT_ID"),
        spotify_client_secret=_require(env, "SPOTIFY_CLIENT_SECRET"),
        spotify_refresh_token=_require(env, "SPOTIFY_REFRESH_TOKEN"),
        output_dir=Path(_require(env, "OUTPUT_DIR")),
        star_playlists=star_playlists,
        filler_playlist_id=filler_id,
        excluded_playlist_id=excluded_id,
        purchased_playlist_id=purchased_id,
        top_n=_env_int(env, "TOP_N", DEFAULT_TOP_N),
        cache_source=(env.get("CACHE_URL") or "").strip() or None,
        cache_ttl_days=_env_int(env, "CACHE_TTL_DAYS", DEFAULT_CACHE_TTL_DAYS),
        detail_fetch_concurrency=_env_int(
            env, "DETAIL_FETCH_CONCURRENCY", DEFAULT_DETAIL_FETCH_CONCURRENCY
        ),
        ebay=_load_ebay_settings(env),
    )


def _load_ebay_settings(env: Mapping[str, str]) -> EbaySettings | None:
    client_id = (env.get("EBAY_CLIENT_ID") or "").strip()
    client_secret = (env.get("EBAY_CLIENT_SECRET") or "").strip()
    if not client_id or not client_secret:
        return None

    return EbaySettings(
        client_id=client_id,
        client_secret=client_secret,
        marketplace_id=env.get("EBAY_MARKETPLACE") or DEFAULT_EBAY_MARKETPLACE,
        delivery_country=env.get("EBAY_DELIVERY_CC") or DEFAULT_EBAY_DELIVERY_CC,
        currency=env.get("EBAY_CURRENCY") or DEFAULT_EBAY_CURRENCY,
        max_total=_env_decimal(env, "EBAY_MAX_PRICE_GBP", DEFAULT_EBAY_MAX_PRICE),
        pages_per_query=_env_int(env, "EBAY_PAGES_PER_QUERY", DEFAULT_EBAY_PAGES_PER_QUERY),
        limit_per_page=_env_int(env, "EBAY_LIMIT_PER_PAGE", DEFAULT_EBAY_LIMIT_PER_PAGE),
        query_concurrency=_env_int(
            env, "EBAY_QUERY_CONCURRENCY", DEFAULT_EBAY_QUERY_CONCURRENCY
        ),
        max_results=_env_int(env, "EBAY_MAX_RESULTS", DEFAULT_EBAY_MAX_RESULTS),
        album_limit=_env_int(env, "EBAY_ALBUM_LIMIT", DEFAULT_EBAY_ALBUM_LIMIT),
    )


def parse_star_playlists(csv: str) -> dict[int, str]:
    """Parse ``"5:id,4:id,..."`` into a star -> playlist id mapping.

    All of 1..5 must be present.
    """
    result: dict[int, str] = {}
    for part in (p.strip() for p in csv.split(",")):
        if not part:
            continue
        stars_raw, sep, pid = part.partition(":")
        try:
            stars = int(stars_raw.strip())
        except ValueError:
            stars = 0
        if not sep or not 1 <= stars <= 5:
            msg = f"Invalid STAR_PLAYLISTS segment: '{part}' (expected like 5:abc123)"
            raise ConfigError(msg)
        result[stars] = pid.strip()

    if not all(stars in result for stars in range(1, 6)):
        msg = "STAR_PLAYLISTS must include all 1..5 entries."
        raise ConfigError(msg)
    return result


def normalize_playlist_id(value: str) -> str:
    """Accept a bare id, a ``spotify:playlist:`` URI or an open.spotify.com URL."""
    if not value or not value.strip():
        return value or ""

    value = value.strip().strip("\"'")
    if value.lower().startswith(_PLAYLIST_URI_PREFIX):
        return value[len(_PLAYLIST_URI_PREFIX):]

    idx = value.lower().find("/playlist/")
    if idx >= 0:
        rest = value[idx + len("/playlist/"):]
        candidate = re.split(r"[?/\"' ]", rest, maxsplit=1)[0]
        if candidate:
            return candidate
    return value


def is_base62(value: str) -> bool:
    return bool(_BASE62_ID.match(value))


def require_base62(label: str, value: str) -> None:
    if not is_base62(value):
        msg = (
            f"{label} is not a valid Spotify playlist id "
            f"(expected 22 alphanumeric chars). Got: '{value}'. "
            "If you pasted a URL, use just the ID."
        )
        raise ConfigError(msg)


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if value is None or not value.strip():
        msg = f"Missing environment variable: {name}"
        raise ConfigError(msg)
    return value


def _optional_playlist_id(env: Mapping[str, str], name: str) -> str | None:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return None
    pid = normalize_playlist_id(raw)
    require_base62(name, pid)
    return pid


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    """Positive integer from env, or ``default`` when unset or invalid."""
    try:
        value = int(env.get(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


def _env_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if not raw:
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return default
    # NaN and Infinity parse but cannot be compared against prices.
    return value if value.is_finite() and value > 0 else default
