# favourite_albums/pipeline/run.py

"""Wire the stages together: ratings -> rankings -> track lists -> listings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from favourite_albums.config import Settings
from favourite_albums.domain.models import CacheEntry
from favourite_albums.ebay.client import EbayClient
from favourite_albums.io.cache_store import load_album_cache
from favourite_albums.marketplace.matcher import (
    MatchResult,
    PurchasedAlbums,
    build_purchased_albums,
    match_listings,
)
from favourite_albums.pipeline.aggregation import AggregationResult, aggregate_ratings
from favourite_albums.pipeline.enrichment import EnrichmentReport, enrich_albums
from favourite_albums.pipeline.exclusions import build_exclusion_set
from favourite_albums.pipeline.ranking import Rankings, build_rankings
from favourite_albums.spotify.client import SpotifyClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineResult:
    aggregation: AggregationResult
    rankings: Rankings
    cache: dict[str, CacheEntry]
    enrichment: EnrichmentReport
    match: MatchResult | None = None
    purchased: PurchasedAlbums = field(default_factory=PurchasedAlbums)


def run_pipeline(
    settings: Settings,
    *,
    spotify: SpotifyClient,
    ebay: EbayClient | None = None,
    now: datetime | None = None,
) -> PipelineResult:
    now = now or datetime.now(timezone.utc)

    purchased = PurchasedAlbums()
    if settings.purchased_playlist_id:
        logger.info("Loading purchased playlist %s.", settings.purchased_playlist_id)
        purchased = build_purchased_albums(
            spotify.iter_playlist_tracks(settings.purchased_playlist_id)
        )

    exclusions = build_exclusion_set(
        spotify.iter_playlist_tracks(pid) for pid in settings.exclusion_playlist_ids
    )

    for stars in sorted(settings.star_playlists, reverse=True):
        playlist_id = settings.star_playlists[stars]
        expected = spotify.get_playlist_total(playlist_id)
        logger.info("%d★ playlist %s: expecting ~%d items.", stars, playlist_id, expected)

    aggregation = aggregate_ratings(
        {
            stars: spotify.iter_playlist_tracks(pid)
            for stars, pid in settings.star_playlists.items()
        },
        exclusions,
    )

    rankings = build_rankings(
        aggregation.albums.values(),
        top_n=settings.top_n,
        current_year=now.year,
    )
    logger.info(
        "Ranked %d eligible albums; keeping top %d.",
        rankings.total_eligible,
        len(rankings.top),
    )

    cache_source = settings.cache_source or str(settings.cache_path)
    cache = load_album_cache(cache_source)
    enrichment = enrich_albums(
        spotify,
        aggregation.albums,
        rankings.detail_album_ids(),
        cache,
        excluded=exclusions.track_uris,
        rated_stars=aggregation.rated_stars,
        ttl=timedelta(days=settings.cache_ttl_days),
        now=now,
        max_workers=settings.detail_fetch_concurrency,
    )

    match: MatchResult | None = None
    if ebay is not None and settings.ebay is not None:
        cfg = settings.ebay
        match = match_listings(
            ebay,
            rankings.top,
            purchased=purchased,
            currency=cfg.currency,
            max_total=cfg.max_total,
            max_results=cfg.max_results,
            album_limit=cfg.album_limit,
            limit_per_page=cfg.limit_per_page,
            max_pages=cfg.pages_per_query,
            max_workers=cfg.query_concurrency,
            now=now,
        )
    else:
        logger.info("eBay credentials not set; skipping marketplace search.")

    return PipelineResult(
        aggregation=aggregation,
        rankings=rankings,
        cache=cache,
        enrichment=enrichment,
        match=match,
        purchased=purchased,
    )
