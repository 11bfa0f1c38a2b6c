from __future__ import annotations

import logging
import re

from catalog.models import AudioFeatureVector, ReferenceTrack
from catalog.search_client import CatalogSearchClient

LOGGER = logging.getLogger(__name__)

# "'Title' by Artist" or "\"Title\" by Artist", artist runs up to the next comma.
SONG_BY_ARTIST_PATTERN = re.compile(r"[\"']([^\"']+)[\"']\s+by\s+([^,]+)", re.IGNORECASE)


def extract_song_and_artist(prompt: str) -> tuple[str, str] | None:
    match = SONG_BY_ARTIST_PATTERN.search(prompt or "")
    if not match:
        return None
    title = match.group(1).strip()
    artist = match.group(2).strip()
    if not title or not artist:
        return None
    return title, artist


def reference_query(title: str, artist: str) -> str:
    return f'track:"{title}" artist:"{artist}"'


class ReferenceTrackResolver:
    def __init__(self, catalog: CatalogSearchClient) -> None:
        self.catalog = catalog

    def resolve(self, prompt: str) -> ReferenceTrack | None:
        """Concrete catalog track for an explicit "'song' by artist" prompt.

        Returns None when the prompt carries no such pattern or the catalog has
        no match; callers continue in mood mode.
        """
        extracted = extract_song_and_artist(prompt)
        if extracted is None:
            return None

        title, artist = extracted
        LOGGER.info('Looking for reference song "%s" by %s', title, artist)
        item = self.catalog.first_raw_item(reference_query(title, artist))
        if item is None:
            LOGGER.info("Reference song not found in catalog; using mood mode")
            return None

        track = ReferenceTrack.from_payload(item)
        LOGGER.info("Found reference track %s by %s", track.title, track.primary_artist)
        return track

    def resolve_with_features(self, prompt: str) -> tuple[ReferenceTrack, AudioFeatureVector | None] | None:
        track = self.resolve(prompt)
        if track is None:
            return None
        return track, self.catalog.audio_features(track.id)
