from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from catalog.channels import SPOTIFY_API_BASE, ChannelChain, ChannelRequest, build_channels
from catalog.models import AudioFeatureVector, CatalogTrackSummary, placeholder_tracks
from catalog.token_provider import CatalogTokenProvider
from errors import CatalogUnavailable
from settings import Settings

LOGGER = logging.getLogger(__name__)

# Small per-query depth spreads results across several synthesized queries.
TRACK_LIMIT = 5


class CatalogSearchClient:
    def __init__(
        self,
        settings: Settings,
        token_provider: CatalogTokenProvider,
        *,
        chain: ChannelChain | None = None,
    ) -> None:
        self.settings = settings
        self.token_provider = token_provider
        self.chain = chain or ChannelChain(build_channels(settings), token_supplier=token_provider.get_token)

    def _search_request(self, query: str, limit: int) -> ChannelRequest:
        return ChannelRequest(
            proxy_path="spotify/search",
            upstream_url=f"{SPOTIFY_API_BASE}/search",
            params={"q": query, "type": "track", "limit": limit, "market": self.settings.spotify_market},
        )

    def raw_search(self, query: str, limit: int = TRACK_LIMIT) -> dict[str, Any]:
        """Search payload as the catalog returns it. Raises ``CatalogUnavailable``."""
        payload = self.chain.execute(self._search_request(query, limit))
        if not isinstance(payload, dict):
            raise CatalogUnavailable("Search payload was not an object", channel="chain")
        return payload

    def try_search(self, query: str, limit: int = TRACK_LIMIT) -> list[CatalogTrackSummary] | None:
        try:
            payload = self.raw_search(query, limit)
        except CatalogUnavailable as exc:
            LOGGER.warning("Catalog search failed for %r: %s", query, exc)
            return None
        items = (payload.get("tracks") or {}).get("items") or []
        tracks = [CatalogTrackSummary.from_payload(item) for item in items if isinstance(item, dict)]
        LOGGER.info("Catalog search for %r found %s tracks", query, len(tracks))
        return [track for track in tracks if track.id][:limit]

    def first_raw_item(self, query: str, limit: int = TRACK_LIMIT) -> dict[str, Any] | None:
        try:
            payload = self.raw_search(query, limit)
        except CatalogUnavailable as exc:
            LOGGER.warning("Catalog lookup failed for %r: %s", query, exc)
            return None
        items = (payload.get("tracks") or {}).get("items") or []
        for item in items:
            if isinstance(item, dict) and item.get("id"):
                return item
        return None

    def search(self, query: str, limit: int = TRACK_LIMIT) -> list[CatalogTrackSummary]:
        tracks = self.try_search(query, limit)
        if tracks is None:
            LOGGER.warning("Using placeholder tracks for %r", query)
            return placeholder_tracks()
        return tracks

    def raw_track(self, track_id: str) -> dict[str, Any] | None:
        request = ChannelRequest(
            proxy_path=f"spotify/track/{quote(track_id, safe='')}",
            upstream_url=f"{SPOTIFY_API_BASE}/tracks/{quote(track_id, safe='')}",
        )
        try:
            payload = self.chain.execute(request)
        except CatalogUnavailable as exc:
            LOGGER.warning("Track lookup failed for %s: %s", track_id, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def raw_audio_features(self, track_id: str) -> dict[str, Any] | None:
        request = ChannelRequest(
            proxy_path=f"spotify/audio-features/{quote(track_id, safe='')}",
            upstream_url=f"{SPOTIFY_API_BASE}/audio-features/{quote(track_id, safe='')}",
        )
        try:
            payload = self.chain.execute(request)
        except CatalogUnavailable as exc:
            LOGGER.info("Audio features unavailable for %s: %s", track_id, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def audio_features(self, track_id: str) -> AudioFeatureVector | None:
        return AudioFeatureVector.from_payload(self.raw_audio_features(track_id))
