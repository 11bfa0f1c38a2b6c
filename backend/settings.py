from __future__ import annotations

import os
from dataclasses import dataclass, field


DEFAULT_RELAYS = (
    "https://corsproxy.io/?",
    "https://api.codetabs.com/v1/proxy?quest=",
    "https://cors-anywhere.herokuapp.com/",
)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-lite"


def _read_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw_value = os.environ.get(name)
    if raw_value is None:
        return default
    try:
        return max(minimum, int(raw_value))
    except (TypeError, ValueError):
        return default


def _read_float_env(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw_value = os.environ.get(name)
    if raw_value is None:
        return default
    try:
        return max(minimum, float(raw_value))
    except (TypeError, ValueError):
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _str_env(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _relays_env(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None:
        return DEFAULT_RELAYS
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    spotify_market: str = "PH"
    lastfm_api_key: str = ""
    google_api_key: str = ""
    gemini_model_name: str = DEFAULT_GEMINI_MODEL
    gemini_max_retries: int = 2
    gemini_retry_base_seconds: float = 2.0
    catalog_proxy_url: str = ""
    relays: tuple[str, ...] = field(default=DEFAULT_RELAYS)
    http_timeout_seconds: float = 10.0
    search_limit: int = 5
    display_cap: int = 30
    token_safety_margin_seconds: int = 60
    enforce_query_exclusion: bool = True
    api_base_url: str = ""
    environment: str = "development"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build settings from the process environment.

    Malformed numeric values fall back to their defaults.
    """
    google_api_key = _str_env("GOOGLE_API_KEY") or _str_env("GEMINI_API_KEY")
    return Settings(
        spotify_client_id=_str_env("SPOTIFY_CLIENT_ID"),
        spotify_client_secret=_str_env("SPOTIFY_CLIENT_SECRET"),
        spotify_market=_str_env("SPOTIFY_MARKET", "PH") or "PH",
        lastfm_api_key=_str_env("LASTFM_API_KEY"),
        google_api_key=google_api_key,
        gemini_model_name=_str_env("GEMINI_MODEL_NAME", DEFAULT_GEMINI_MODEL) or DEFAULT_GEMINI_MODEL,
        gemini_max_retries=_read_int_env("GEMINI_MAX_RETRIES", 2, minimum=0),
        gemini_retry_base_seconds=_read_float_env("GEMINI_RETRY_BASE_SECONDS", 2.0, minimum=1.0),
        catalog_proxy_url=_str_env("NOTO_CATALOG_PROXY_URL").rstrip("/"),
        relays=_relays_env("NOTO_RELAYS"),
        http_timeout_seconds=_read_float_env("NOTO_HTTP_TIMEOUT_SECONDS", 10.0, minimum=1.0),
        search_limit=_read_int_env("NOTO_SEARCH_LIMIT", 5, minimum=1),
        display_cap=_read_int_env("NOTO_DISPLAY_CAP", 30, minimum=1),
        token_safety_margin_seconds=_read_int_env("NOTO_TOKEN_SAFETY_MARGIN_SECONDS", 60, minimum=0),
        enforce_query_exclusion=_bool_env("NOTO_ENFORCE_QUERY_EXCLUSION", True),
        api_base_url=_str_env("API_BASE_URL"),
        environment=_str_env("NOTO_ENV", "development") or "development",
        log_level=_str_env("NOTO_LOG_LEVEL", "INFO").upper() or "INFO",
    )
