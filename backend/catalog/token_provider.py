from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from catalog.channels import SPOTIFY_TOKEN_URL, ChannelChain, ChannelRequest, build_channels
from catalog.models import CachedToken
from errors import CatalogUnavailable, UpstreamAuthError
from settings import Settings

LOGGER = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600


def _now_ms() -> int:
    return int(time.time() * 1000)


def _require_access_token(payload: Any, channel: str) -> None:
    # relays can pass an upstream error body through with a 200 status
    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise CatalogUnavailable(f"{channel} returned no access_token", channel=channel)


class TokenCache:
    """Process-wide holder for one service's bearer token.

    Reads are lock-free snapshots; writes use compare-and-swap so that a slow
    refresh cannot overwrite a token that another caller stored meanwhile.
    """

    def __init__(self, safety_margin_ms: int = 60_000, clock: Callable[[], int] = _now_ms) -> None:
        self.safety_margin_ms = safety_margin_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._token: CachedToken | None = None

    def now_ms(self) -> int:
        return self._clock()

    def snapshot(self) -> CachedToken | None:
        return self._token

    def fresh_value(self) -> str | None:
        token = self._token
        if token is not None and token.is_fresh(self._clock(), self.safety_margin_ms):
            return token.value
        return None

    def compare_and_swap(self, expected: CachedToken | None, replacement: CachedToken) -> bool:
        with self._lock:
            current = self._token
            if current is not expected and current is not None and current.expires_at_ms >= replacement.expires_at_ms:
                return False
            self._token = replacement
            return True

    def clear(self) -> None:
        with self._lock:
            self._token = None


class CatalogTokenProvider:
    def __init__(
        self,
        settings: Settings,
        *,
        cache: TokenCache | None = None,
        chain: ChannelChain | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache or TokenCache(safety_margin_ms=settings.token_safety_margin_seconds * 1000)
        self.chain = chain or ChannelChain(build_channels(settings))

    def _token_request(self) -> ChannelRequest:
        return ChannelRequest(
            proxy_path="spotify/token",
            upstream_url=SPOTIFY_TOKEN_URL,
            method="POST",
            form={
                "grant_type": "client_credentials",
                "client_id": self.settings.spotify_client_id,
                "client_secret": self.settings.spotify_client_secret,
            },
            authorized=False,
            validate=_require_access_token,
        )

    def get_token(self) -> str:
        cached = self.cache.fresh_value()
        if cached:
            return cached

        observed = self.cache.snapshot()
        LOGGER.info("Refreshing catalog token")
        try:
            payload = self.chain.execute(self._token_request())
        except CatalogUnavailable as exc:
            raise UpstreamAuthError("All token request methods failed", attempts=[str(exc)]) from exc

        token = self._cached_token_from(payload)
        if not self.cache.compare_and_swap(observed, token):
            LOGGER.debug("Another caller refreshed the catalog token first")
            return self.cache.fresh_value() or token.value
        return token.value

    def _cached_token_from(self, payload: Any) -> CachedToken:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise UpstreamAuthError("Token response did not contain an access_token")
        try:
            ttl_seconds = int(payload.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS)
        except (TypeError, ValueError):
            ttl_seconds = DEFAULT_TOKEN_TTL_SECONDS
        return CachedToken(
            value=str(payload["access_token"]),
            expires_at_ms=self.cache.now_ms() + ttl_seconds * 1000,
        )
