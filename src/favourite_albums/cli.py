# src/favourite_albums/cli.py

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

import httpx

from favourite_albums.config import ConfigError, Settings, load_settings
from favourite_albums.ebay.client import EbayClient, EbayError, get_app_access_token
from favourite_albums.http_utils import DEFAULT_TIMEOUT
from favourite_albums.io.cache_store import save_album_cache
from favourite_albums.io.output import (
    write_listings,
    write_rankings,
    write_searched_albums,
)
from favourite_albums.pipeline.run import PipelineResult, run_pipeline
from favourite_albums.spotify.client import (
    SpotifyClient,
    SpotifyError,
    get_access_token,
)

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the favourite-albums CLI."""
    args = _build_arg_parser().parse_args(argv)

    _configure_logging(verbose=args.verbose)

    try:
        settings = _apply_overrides(load_settings(), args)
        _run(settings, skip_ebay=args.skip_ebay)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    except (SpotifyError, EbayError, httpx.HTTPError, ValueError) as exc:
        # ValueError covers non-JSON bodies from an otherwise successful call.
        logger.error("Run failed: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user. Exiting.")
        sys.exit(1)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="favourite-albums",
        description=(
            "Rank favourite albums from Spotify star playlists and find "
            "vinyl copies on eBay."
        ),
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Override OUTPUT_DIR.",
    )
    parser.add_argument(
        "--top-n",
        type=int,
        default=None,
        help="Override TOP_N (size of the global list).",
    )
    parser.add_argument(
        "--skip-ebay",
        action="store_true",
        help="Do not search eBay even if credentials are set.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )
    return parser


def _configure_logging(*, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    changes: dict[str, object] = {}
    if args.output_dir:
        changes["output_dir"] = Path(args.output_dir)
    if args.top_n is not None:
        if args.top_n < 1:
            msg = "--top-n must be >= 1."
            raise ConfigError(msg)
        changes["top_n"] = args.top_n
    return dataclasses.replace(settings, **changes) if changes else settings


def _run(settings: Settings, *, skip_ebay: bool) -> None:
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    with httpx.Client(timeout=DEFAULT_TIMEOUT) as http:
        token = get_access_token(
            settings.spotify_client_id,
            settings.spotify_client_secret,
            settings.spotify_refresh_token,
            http_client=http,
        )
        spotify = SpotifyClient(token, http_client=http)

        ebay: EbayClient | None = None
        if settings.ebay is not None and not skip_ebay:
            ebay_token = get_app_access_token(
                settings.ebay.client_id,
                settings.ebay.client_secret,
                http_client=http,
            )
            ebay = EbayClient(
                ebay_token,
                marketplace_id=settings.ebay.marketplace_id,
                delivery_country=settings.ebay.delivery_country,
                http_client=http,
            )

        result = run_pipeline(settings, spotify=spotify, ebay=ebay)

    _write_outputs(settings, result)


def _write_outputs(settings: Settings, result: PipelineResult) -> None:
    out = settings.output_dir
    years = write_rankings(out, result.rankings)
    logger.info(
        "Wrote %d albums to %s and %d year files.",
        len(result.rankings.top),
        out / "albums.jsonl",
        years,
    )

    if result.match is not None:
        ebay_dir = out / "ebay"
        write_searched_albums(ebay_dir / "searched-albums.jsonl", result.match.searched_albums)
        count = write_listings(ebay_dir / "listings.jsonl", result.match.listings)
        logger.info("Wrote %d listings to %s.", count, ebay_dir / "listings.jsonl")

    saved = save_album_cache(settings.cache_path, result.cache)
    logger.info("Saved %d cached albums to %s.", saved, settings.cache_path)


if __name__ == "__main__":
    # python -m favourite_albums.cli -v
    main()
