from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Protocol
from urllib.parse import quote

from catalog.channels import SPOTIFY_API_BASE, Channel, ChannelRequest
from catalog.models import Playable, PreviewOutcome, Unavailable
from catalog.token_provider import CatalogTokenProvider
from errors import CatalogUnavailable, UpstreamAuthError

LOGGER = logging.getLogger(__name__)


class PreviewResolver:
    """Finds a short preview URL for a track: backend proxy first, then the catalog directly."""

    def __init__(
        self,
        token_provider: CatalogTokenProvider,
        *,
        proxy: Channel | None,
        direct: Channel,
    ) -> None:
        self.token_provider = token_provider
        self.proxy = proxy
        self.direct = direct

    def _track_request(self, track_id: str) -> ChannelRequest:
        encoded = quote(track_id, safe="")
        return ChannelRequest(
            proxy_path=f"spotify/track/{encoded}",
            upstream_url=f"{SPOTIFY_API_BASE}/tracks/{encoded}",
        )

    def _proxy_preview(self, track_id: str) -> str | None:
        if self.proxy is None:
            return None
        try:
            payload = self.proxy.attempt(self._track_request(track_id))
        except CatalogUnavailable as exc:
            LOGGER.info("Preview proxy lookup failed for %s: %s", track_id, exc)
            return None
        return (payload or {}).get("preview_url") if isinstance(payload, dict) else None

    def _direct_preview(self, track_id: str) -> str | None:
        try:
            token = self.token_provider.get_token()
            payload = self.direct.attempt(self._track_request(track_id), token=token)
        except (UpstreamAuthError, CatalogUnavailable) as exc:
            LOGGER.info("Direct preview lookup failed for %s: %s", track_id, exc)
            return None
        return payload.get("preview_url") if isinstance(payload, dict) else None

    def resolve_preview(self, track_id: str, external_url: str = "") -> PreviewOutcome:
        preview_url = self._proxy_preview(track_id) or self._direct_preview(track_id)
        if preview_url:
            return Playable(url=str(preview_url))
        LOGGER.info("No preview for %s; open it externally", track_id)
        return Unavailable(external_url=external_url)


class PlaybackState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    PLAYING = "playing"
    PAUSED = "paused"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class AudioHandle(Protocol):
    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...


AudioFactory = Callable[[str], AudioHandle]


class PreviewPlayer:
    """Holds at most one audio handle; a new track stops the old one first."""

    def __init__(self, resolver: PreviewResolver, audio_factory: AudioFactory) -> None:
        self.resolver = resolver
        self.audio_factory = audio_factory
        self._lock = threading.RLock()
        self._handle: AudioHandle | None = None
        self.current_track_id: str | None = None
        self.state = PlaybackState.IDLE
        self.last_outcome: PreviewOutcome | None = None

    @property
    def active_handle(self) -> AudioHandle | None:
        return self._handle

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                handle.stop()
            except Exception:
                LOGGER.exception("Stopping preview for %s failed", self.current_track_id)
        self.current_track_id = None
        self.state = PlaybackState.IDLE

    def toggle(self, track_id: str, external_url: str = "") -> PlaybackState:
        with self._lock:
            if track_id == self.current_track_id and self._handle is not None:
                if self.state == PlaybackState.PLAYING:
                    self._handle.pause()
                    self.state = PlaybackState.PAUSED
                    return self.state
                if self.state == PlaybackState.PAUSED:
                    self._handle.play()
                    self.state = PlaybackState.PLAYING
                    return self.state
            return self.start(track_id, external_url)

    def start(self, track_id: str, external_url: str = "") -> PlaybackState:
        with self._lock:
            self._release()
            self.state = PlaybackState.CHECKING
            outcome = self.resolver.resolve_preview(track_id, external_url)
            self.last_outcome = outcome
            if isinstance(outcome, Unavailable):
                self.state = PlaybackState.UNAVAILABLE
                return self.state

            try:
                handle = self.audio_factory(outcome.url)
                handle.play()
            except Exception:
                LOGGER.exception("Preview playback failed for %s", track_id)
                self.state = PlaybackState.FAILED
                return self.state

            self._handle = handle
            self.current_track_id = track_id
            self.state = PlaybackState.PLAYING
            return self.state

    def on_track_end(self) -> None:
        with self._lock:
            self._release()

    def stop(self) -> None:
        with self._lock:
            self._release()
