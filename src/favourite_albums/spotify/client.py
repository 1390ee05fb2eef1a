# src/favourite_albums/spotify/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx

from favourite_albums.domain.models import (
    TRACK_URI_PREFIX,
    AlbumRef,
    AlbumTrack,
    PlaylistTrack,
)
from favourite_albums.http_utils import DEFAULT_TIMEOUT, send_with_rate_limit

logger = logging.getLogger(__name__)


API_BASE_URL = "https://api.spotify.com/v1"
TOKEN_URL = "https://accounts.spotify.com/api/token"
OPEN_TRACK_URL = "https://open.spotify.com/track/"

PLAYLIST_PAGE_SIZE = 100
ALBUM_TRACKS_PAGE_SIZE = 50

PLAYLIST_TRACK_FIELDS = (
    "items(track("
    "album(id,name,images,artists(name),uri,album_type,total_tracks,"
    "release_date,release_date_precision),"
    "name,uri"
    ")),next"
)


class SpotifyError(RuntimeError):
    """A Spotify request failed with a non-retryable status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def get_access_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    http_client: httpx.Client | None = None,
) -> str:
    """Exchange a refresh token for a short-lived access token."""
    client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT)
    try:
        response = client.post(
            TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(client_id, client_secret),
        )
    finally:
        if http_client is None:
            client.close()

    if response.is_error:
        msg = (
            f"Spotify token request failed: {response.status_code} "
            f"{response.reason_phrase}\nBody: {response.text}"
        )
        raise SpotifyError(msg, status_code=response.status_code)

    token = response.json().get("access_token")
    if not token:
        msg = f"Spotify token response missing access_token.\nBody: {response.text}"
        raise SpotifyError(msg)
    return token


class SpotifyClient:
    """Bearer-token client for the Spotify Web API.

    All listing calls are lazy generators that follow the ``next`` URL of
    each page; a consumer that stops iterating stops the paging.
    """

    def __init__(
        self,
        access_token: str,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not access_token:
            msg = "access_token must be non-empty."
            raise ValueError(msg)

        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._sleep = sleep

    def close(self) -> None:
        """Close the underlying HTTP client if we created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SpotifyClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = send_with_rate_limit(
            self._client,
            "GET",
            url,
            params=params,
            headers=self._headers,
            sleep=self._sleep,
        )
        if response.is_error:
            msg = (
                f"Spotify request failed: {response.status_code} "
                f"{response.reason_phrase} for {url}\nBody: {response.text}"
            )
            raise SpotifyError(msg, status_code=response.status_code)
        return response.json()

    def _iter_pages(
        self, url: str, params: dict[str, Any] | None
    ) -> Iterator[dict[str, Any]]:
        next_url: str | None = url
        while next_url is not None:
            page = self._get_json(next_url, params)
            yield page
            next_url = page.get("next")
            # "next" already carries the query string.
            params = None

    def iter_playlist_tracks(self, playlist_id: str) -> Iterator[PlaylistTrack]:
        """Stream all tracks of a playlist with the album fields we need."""
        url = f"{API_BASE_URL}/playlists/{playlist_id}/tracks"
        params = {"limit": PLAYLIST_PAGE_SIZE, "fields": PLAYLIST_TRACK_FIELDS}

        for page in self._iter_pages(url, params):
            for item in page.get("items") or []:
                raw_track = (item or {}).get("track")
                if raw_track:
                    yield parse_playlist_track(raw_track)

    def get_playlist_total(self, playlist_id: str) -> int:
        """Return the playlist's declared ``tracks.total`` (diagnostics only)."""
        url = f"{API_BASE_URL}/playlists/{playlist_id}"
        data = self._get_json(url, {"fields": "tracks(total)"})
        total = (data.get("tracks") or {}).get("total")
        return total if isinstance(total, int) else 0

    def iter_album_tracks(self, album_id: str) -> Iterator[AlbumTrack]:
        """Stream an album's tracks (number, name, uri)."""
        url = f"{API_BASE_URL}/albums/{album_id}/tracks"
        params = {"limit": ALBUM_TRACKS_PAGE_SIZE}

        for page in self._iter_pages(url, params):
            for item in page.get("items") or []:
                if not item:
                    continue
                yield AlbumTrack(
                    number=int(item.get("track_number") or 0),
                    name=item.get("name") or "",
                    uri=item.get("uri") or "",
                )


def parse_playlist_track(raw: dict[str, Any]) -> PlaylistTrack:
    raw_album = raw.get("album")
    album = _parse_album(raw_album) if isinstance(raw_album, dict) else None
    return PlaylistTrack(uri=raw.get("uri"), name=raw.get("name") or "", album=album)


def _parse_album(raw: dict[str, Any]) -> AlbumRef:
    images = [img for img in raw.get("images") or [] if img and img.get("url")]
    widest = max(images, key=lambda img: img.get("width") or 0, default=None)

    return AlbumRef(
        id=raw.get("id"),
        name=raw.get("name") or "",
        artists=[a.get("name") or "" for a in raw.get("artists") or [] if a],
        image_url=widest["url"] if widest else "",
        uri=raw.get("uri") or "",
        album_type=raw.get("album_type"),
        total_tracks=int(raw.get("total_tracks") or 0),
        release_date=raw.get("release_date"),
        release_date_precision=raw.get("release_date_precision"),
    )


def open_track_url(uri: str) -> str:
    """``spotify:track:<id>`` -> ``https://open.spotify.com/track/<id>``."""
    if uri and uri.startswith(TRACK_URI_PREFIX):
        return OPEN_TRACK_URL + uri[len(TRACK_URI_PREFIX):]
    return uri


def track_uri_from_url(url: str) -> str | None:
    """Inverse of :func:`open_track_url`; None for anything else."""
    if not url.lower().startswith(OPEN_TRACK_URL):
        return None
    track_id = url[len(OPEN_TRACK_URL):].split("?", 1)[0]
    return TRACK_URI_PREFIX + track_id
