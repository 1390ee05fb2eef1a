# favourite_albums/pipeline/exclusions.py

"""Build the set of "not wanted" tracks from filler/excluded playlists."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from favourite_albums.domain.models import ExclusionSet, PlaylistTrack

logger = logging.getLogger(__name__)


def add_to_exclusions(exclusions: ExclusionSet, tracks: Iterable[PlaylistTrack]) -> int:
    """Add every valid track to ``exclusions``; return how many were added.

    Per-album counts are incremented once per contributing track, so a track
    listed in two exclusion playlists counts against its album twice.
    """
    added = 0
    for track in tracks:
        if not track.is_valid_track:
            continue

        exclusions.track_uris.add(track.uri)  # type: ignore[arg-type]
        album_id = track.album.id if track.album else None
        if album_id:
            exclusions.excluded_per_album[album_id] = (
                exclusions.excluded_per_album.get(album_id, 0) + 1
            )
        added += 1
    return added


def build_exclusion_set(playlists: Iterable[Iterable[PlaylistTrack]]) -> ExclusionSet:
    """Union the tracks of all exclusion playlists."""
    exclusions = ExclusionSet()
    for index, tracks in enumerate(playlists, start=1):
        added = add_to_exclusions(exclusions, tracks)
        logger.info("Exclusion playlist %d: %d tracks.", index, added)

    logger.info(
        "Excluding %d tracks across %d albums.",
        len(exclusions.track_uris),
        len(exclusions.excluded_per_album),
    )
    return exclusions
