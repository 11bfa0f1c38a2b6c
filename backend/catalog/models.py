from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Union


PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/300x300/9370DB/FFFFFF?text=Track+{index}"


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _artist_names(raw_artists: Any) -> tuple[str, ...]:
    if not isinstance(raw_artists, list):
        return ()
    names = []
    for artist in raw_artists:
        if isinstance(artist, dict):
            name = str(artist.get("name") or "").strip()
        else:
            name = str(artist or "").strip()
        if name:
            names.append(name)
    return tuple(names)


def _ordered_unique(values: Iterable[str]) -> tuple[str, ...]:
    # catalog order matters: the first genre is the primary one
    return tuple(dict.fromkeys(value for value in values if value))


def _first_image_url(album: dict[str, Any]) -> str:
    images = album.get("images")
    if isinstance(images, list):
        for image in images:
            if isinstance(image, dict) and image.get("url"):
                return str(image["url"])
    return ""


@dataclass(frozen=True)
class Tag:
    name: str
    weight: int = 0


@dataclass(frozen=True)
class AudioFeatureVector:
    energy: float
    valence: float
    tempo_bpm: float

    @classmethod
    def from_payload(cls, payload: Any) -> "AudioFeatureVector | None":
        if not isinstance(payload, dict):
            return None
        energy = _coerce_float(payload.get("energy"))
        valence = _coerce_float(payload.get("valence"))
        tempo = _coerce_float(payload.get("tempo"))
        if energy is None or valence is None or tempo is None:
            return None
        return cls(
            energy=max(0.0, min(1.0, energy)),
            valence=max(0.0, min(1.0, valence)),
            tempo_bpm=max(0.0, tempo),
        )


@dataclass(frozen=True)
class EnrichmentContext:
    artist_summary: dict[str, Any] | None = None
    top_tags: tuple[Tag, ...] = ()

    @classmethod
    def empty(cls) -> "EnrichmentContext":
        return cls()

    def tag_names(self, limit: int | None = None) -> list[str]:
        names = [tag.name for tag in self.top_tags if tag.name]
        return names if limit is None else names[:limit]


@dataclass(frozen=True)
class ReferenceTrack:
    id: str
    title: str
    artist_names: tuple[str, ...]
    album_name: str = ""
    genre_tags: tuple[str, ...] = ()
    external_url: str = ""

    @property
    def primary_artist(self) -> str:
        return self.artist_names[0] if self.artist_names else ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ReferenceTrack":
        album = payload.get("album") if isinstance(payload.get("album"), dict) else {}
        genres = album.get("genres") if isinstance(album.get("genres"), list) else []
        external_urls = payload.get("external_urls") if isinstance(payload.get("external_urls"), dict) else {}
        return cls(
            id=str(payload.get("id") or ""),
            title=str(payload.get("name") or "").strip(),
            artist_names=_artist_names(payload.get("artists")),
            album_name=str(album.get("name") or "").strip(),
            genre_tags=_ordered_unique(str(genre).strip() for genre in genres),
            external_url=str(external_urls.get("spotify") or ""),
        )


@dataclass(frozen=True)
class SynthesizedQuery:
    text: str
    tier: int


@dataclass(frozen=True)
class CatalogTrackSummary:
    id: str
    name: str
    artist_names: tuple[str, ...] = ()
    album_image_url: str = ""
    popularity: int = 0
    preview_url: str | None = None
    external_url: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CatalogTrackSummary":
        album = payload.get("album") if isinstance(payload.get("album"), dict) else {}
        external_urls = payload.get("external_urls") if isinstance(payload.get("external_urls"), dict) else {}
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or "").strip(),
            artist_names=_artist_names(payload.get("artists")),
            album_image_url=_first_image_url(album),
            popularity=_coerce_int(payload.get("popularity"), 0),
            preview_url=payload.get("preview_url") or None,
            external_url=str(external_urls.get("spotify") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artists": list(self.artist_names),
            "album_image_url": self.album_image_url,
            "popularity": self.popularity,
            "preview_url": self.preview_url,
            "external_url": self.external_url,
        }


def placeholder_tracks() -> list[CatalogTrackSummary]:
    return [
        CatalogTrackSummary(
            id="1",
            name="Sample Track 1",
            artist_names=("Sample Artist",),
            album_image_url=PLACEHOLDER_IMAGE_URL.format(index=1),
            external_url="#",
        ),
        CatalogTrackSummary(
            id="2",
            name="Sample Track 2",
            artist_names=("Sample Artist 2",),
            album_image_url=PLACEHOLDER_IMAGE_URL.format(index=2),
            external_url="#",
        ),
    ]


@dataclass(frozen=True)
class RankedTrack:
    track: CatalogTrackSummary
    priority_tier: int

    def to_dict(self) -> dict[str, Any]:
        payload = self.track.to_dict()
        payload["priority_tier"] = self.priority_tier
        return payload


@dataclass(frozen=True)
class RankedResultSet:
    items: tuple[RankedTrack, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def track_ids(self) -> list[str]:
        return [item.track.id for item in self.items]

    def to_list(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self.items]


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at_ms: int

    def is_fresh(self, now_ms: int, safety_margin_ms: int) -> bool:
        return now_ms < self.expires_at_ms - safety_margin_ms


@dataclass(frozen=True)
class Playable:
    url: str


@dataclass(frozen=True)
class Unavailable:
    external_url: str = ""


PreviewOutcome = Union[Playable, Unavailable]
