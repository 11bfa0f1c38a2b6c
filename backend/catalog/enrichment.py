from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import quote

from catalog.channels import LASTFM_API_BASE, BackendProxyChannel, Channel, ChannelRequest, DirectChannel, HttpCallable
from catalog.models import EnrichmentContext, Tag
from errors import CatalogUnavailable
from settings import Settings

LOGGER = logging.getLogger(__name__)


def _parse_tags(raw_tags: Any) -> tuple[Tag, ...]:
    if isinstance(raw_tags, dict):
        raw_tags = raw_tags.get("tag", [])
    if isinstance(raw_tags, dict):
        raw_tags = [raw_tags]
    if not isinstance(raw_tags, list):
        return ()
    tags = []
    for item in raw_tags:
        if isinstance(item, dict):
            name = str(item.get("name") or "").strip()
            try:
                weight = int(item.get("count") or 0)
            except (TypeError, ValueError):
                weight = 0
        else:
            name, weight = str(item or "").strip(), 0
        if name:
            tags.append(Tag(name=name, weight=weight))
    return tuple(tags)


class EnrichmentClient:
    """Artist tags and summary from Last.fm, best effort."""

    def __init__(
        self,
        settings: Settings,
        *,
        proxy: Channel | None = None,
        direct: Channel | None = None,
        http: HttpCallable | None = None,
        use_proxy: bool = True,
    ) -> None:
        self.settings = settings
        timeout = settings.http_timeout_seconds
        if proxy is None and use_proxy and settings.catalog_proxy_url:
            proxy = BackendProxyChannel(settings.catalog_proxy_url, timeout=timeout, http=http)
        self.proxy = proxy
        self.direct = direct or DirectChannel(timeout=timeout, http=http)

    def get_context(self, artist_name: str) -> EnrichmentContext:
        artist_name = (artist_name or "").strip()
        if not artist_name:
            return EnrichmentContext.empty()

        if self.proxy is not None:
            try:
                payload = self.proxy.attempt(
                    ChannelRequest(
                        proxy_path=f"lastfm/artist/{quote(artist_name, safe='')}",
                        upstream_url=LASTFM_API_BASE,
                        authorized=False,
                    )
                )
                if isinstance(payload, dict):
                    artist_info = payload.get("artistInfo")
                    return EnrichmentContext(
                        artist_summary=artist_info if isinstance(artist_info, dict) else None,
                        top_tags=_parse_tags(payload.get("topTags")),
                    )
            except CatalogUnavailable as exc:
                LOGGER.info("Enrichment proxy unavailable for %s: %s", artist_name, exc)

        if not self.settings.lastfm_api_key:
            LOGGER.warning("LASTFM_API_KEY is not configured; skipping enrichment for %s", artist_name)
            return EnrichmentContext.empty()

        with ThreadPoolExecutor(max_workers=2) as pool:
            info_future = pool.submit(self.fetch_artist_info, artist_name)
            tags_future = pool.submit(self.fetch_top_tags, artist_name)
            artist_info = info_future.result()
            top_tags = tags_future.result()

        return EnrichmentContext(artist_summary=artist_info, top_tags=top_tags)

    def raw_context(self, artist_name: str) -> dict[str, Any]:
        """Payload shape served by the backend proxy route."""
        context = self.get_context(artist_name)
        return {
            "artistInfo": context.artist_summary,
            "topTags": [{"name": tag.name, "count": tag.weight} for tag in context.top_tags],
        }

    def _lastfm_request(self, method: str, artist_name: str) -> ChannelRequest:
        return ChannelRequest(
            proxy_path="",
            upstream_url=LASTFM_API_BASE,
            params={
                "method": method,
                "artist": artist_name,
                "api_key": self.settings.lastfm_api_key,
                "format": "json",
            },
            authorized=False,
        )

    def fetch_artist_info(self, artist_name: str) -> dict[str, Any] | None:
        try:
            payload = self.direct.attempt(self._lastfm_request("artist.getinfo", artist_name))
        except CatalogUnavailable as exc:
            LOGGER.info("Last.fm artist info failed for %s: %s", artist_name, exc)
            return None
        artist = payload.get("artist") if isinstance(payload, dict) else None
        return artist if isinstance(artist, dict) else None

    def fetch_top_tags(self, artist_name: str) -> tuple[Tag, ...]:
        try:
            payload = self.direct.attempt(self._lastfm_request("artist.gettoptags", artist_name))
        except CatalogUnavailable as exc:
            LOGGER.info("Last.fm top tags failed for %s: %s", artist_name, exc)
            return ()
        toptags = payload.get("toptags") if isinstance(payload, dict) else None
        return _parse_tags(toptags)
