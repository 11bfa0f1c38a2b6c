from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SavedSong:
    track_id: str
    title: str
    artist: str
    album_image: str | None = None
    saved_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        return {
            "trackId": payload["track_id"],
            "title": payload["title"],
            "artist": payload["artist"],
            "albumImage": payload["album_image"],
            "savedAt": payload["saved_at"],
        }


@dataclass(frozen=True)
class AccountIdentity:
    user_id: str
    banned: bool = False


class AccountVerifier(Protocol):
    def verify(self, bearer_token: str) -> AccountIdentity | None: ...


class SavedSongStore(Protocol):
    def save(self, user_id: str, song: SavedSong) -> bool: ...

    def list(self, user_id: str) -> list[SavedSong]: ...

    def delete(self, user_id: str, track_id: str) -> bool: ...

    def exists(self, user_id: str, track_id: str) -> bool: ...


class InMemorySavedSongStore:
    """Bookmarks keyed by (user_id, track_id); listing is newest first."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._songs: dict[str, dict[str, SavedSong]] = {}

    def save(self, user_id: str, song: SavedSong) -> bool:
        with self._lock:
            user_songs = self._songs.setdefault(user_id, {})
            if song.track_id in user_songs:
                return False
            user_songs[song.track_id] = song
            return True

    def list(self, user_id: str) -> list[SavedSong]:
        with self._lock:
            songs = list(self._songs.get(user_id, {}).values())
        return list(reversed(songs))

    def delete(self, user_id: str, track_id: str) -> bool:
        with self._lock:
            return self._songs.get(user_id, {}).pop(track_id, None) is not None

    def exists(self, user_id: str, track_id: str) -> bool:
        with self._lock:
            return track_id in self._songs.get(user_id, {})
