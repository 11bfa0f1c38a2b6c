from __future__ import annotations


class NotoError(RuntimeError):
    """Base class for errors raised by the discovery backend."""


class UpstreamAuthError(NotoError):
    """Every channel for obtaining a catalog bearer token failed."""

    def __init__(self, message: str, *, attempts: list[str] | None = None) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])


class CatalogUnavailable(NotoError):
    """A single catalog channel attempt failed. Always recovered by the caller."""

    def __init__(self, message: str, *, channel: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.channel = channel
        self.status_code = status_code


class PromptError(NotoError):
    """The user prompt is missing or unusable."""
