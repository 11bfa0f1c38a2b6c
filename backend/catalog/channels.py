from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from urllib.parse import quote, urlencode

import requests

from errors import CatalogUnavailable, UpstreamAuthError
from settings import Settings

LOGGER = logging.getLogger(__name__)

SPOTIFY_API_BASE = "https://api.spotify.com/v1"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
LASTFM_API_BASE = "https://ws.audioscrobbler.com/2.0/"

HttpCallable = Callable[..., requests.Response]


@dataclass(frozen=True)
class ChannelRequest:
    """One logical call that every channel knows how to route.

    ``proxy_path`` is relative to the trusted backend proxy; ``upstream_url``
    is the real service endpoint used by direct and relayed channels.
    ``validate`` may reject a decoded payload by raising ``CatalogUnavailable``;
    the chain then moves on to the next channel.
    """

    proxy_path: str
    upstream_url: str
    method: str = "GET"
    params: dict[str, Any] | None = None
    form: dict[str, str] | None = None
    authorized: bool = True
    validate: Callable[[Any, str], None] | None = field(default=None, compare=False)

    def full_upstream_url(self) -> str:
        if not self.params:
            return self.upstream_url
        return f"{self.upstream_url}?{urlencode(self.params)}"


def _decode_json(response: requests.Response, channel: str) -> Any:
    if response.status_code < 200 or response.status_code >= 300:
        raise CatalogUnavailable(
            f"{channel} answered HTTP {response.status_code}",
            channel=channel,
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise CatalogUnavailable(f"{channel} returned a non-JSON body", channel=channel) from exc


class Channel:
    """A single way of reaching an upstream service."""

    name = "channel"
    needs_token = True

    def __init__(self, *, timeout: float = 10.0, http: HttpCallable | None = None) -> None:
        self.timeout = timeout
        self._http = http or requests.request

    def attempt(self, request: ChannelRequest, *, token: str | None = None) -> Any:
        raise NotImplementedError

    def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._http(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise CatalogUnavailable(f"{self.name} request failed: {exc}", channel=self.name) from exc
        return _decode_json(response, self.name)

    @staticmethod
    def _auth_headers(request: ChannelRequest, token: str | None) -> dict[str, str]:
        if request.authorized and token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class BackendProxyChannel(Channel):
    """Trusted backend route; holds the credentials itself."""

    needs_token = False

    def __init__(self, base_url: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.name = f"proxy:{self.base_url}"

    def attempt(self, request: ChannelRequest, *, token: str | None = None) -> Any:
        url = f"{self.base_url}/{request.proxy_path.lstrip('/')}"
        params = request.params if request.method == "GET" else None
        return self._send(request.method, url, params=params)


class DirectChannel(Channel):
    name = "direct"

    def attempt(self, request: ChannelRequest, *, token: str | None = None) -> Any:
        return self._send(
            request.method,
            request.upstream_url,
            params=request.params,
            data=request.form,
            headers=self._auth_headers(request, token),
        )


class RelayChannel(Channel):
    """Public forwarding endpoint; the encoded target URL is appended to the prefix."""

    def __init__(self, prefix: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.prefix = prefix
        self.name = f"relay:{prefix}"

    def attempt(self, request: ChannelRequest, *, token: str | None = None) -> Any:
        url = self.prefix + quote(request.full_upstream_url(), safe="")
        return self._send(
            request.method,
            url,
            data=request.form,
            headers=self._auth_headers(request, token),
        )


def build_channels(
    settings: Settings,
    *,
    include_proxy: bool = True,
    http: HttpCallable | None = None,
) -> list[Channel]:
    timeout = settings.http_timeout_seconds
    channels: list[Channel] = []
    if include_proxy and settings.catalog_proxy_url:
        channels.append(BackendProxyChannel(settings.catalog_proxy_url, timeout=timeout, http=http))
    channels.append(DirectChannel(timeout=timeout, http=http))
    for prefix in settings.relays:
        channels.append(RelayChannel(prefix, timeout=timeout, http=http))
    return channels


class ChannelChain:
    """Tries each channel in order until one answers.

    Channels that need a bearer token ask ``token_supplier`` once, lazily.
    When the supplier raises ``UpstreamAuthError`` those channels are skipped.
    """

    def __init__(
        self,
        channels: Iterable[Channel],
        *,
        token_supplier: Callable[[], str] | None = None,
    ) -> None:
        self.channels = list(channels)
        self.token_supplier = token_supplier

    def execute(self, request: ChannelRequest) -> Any:
        failures: list[str] = []
        token: str | None = None
        token_failed = False

        for channel in self.channels:
            wants_token = channel.needs_token and request.authorized
            if wants_token and token is None:
                if token_failed or self.token_supplier is None:
                    failures.append(f"{channel.name}: no token")
                    continue
                try:
                    token = self.token_supplier()
                except UpstreamAuthError as exc:
                    LOGGER.warning("Catalog token unavailable, skipping authorized channels: %s", exc)
                    token_failed = True
                    failures.append(f"{channel.name}: no token")
                    continue

            try:
                payload = channel.attempt(request, token=token if wants_token else None)
                if request.validate is not None:
                    request.validate(payload, channel.name)
                return payload
            except CatalogUnavailable as exc:
                LOGGER.info("Channel %s failed for %s: %s", channel.name, request.proxy_path, exc)
                failures.append(f"{channel.name}: {exc}")

        raise CatalogUnavailable(
            f"All channels failed for {request.proxy_path}: " + "; ".join(failures),
            channel="chain",
        )
