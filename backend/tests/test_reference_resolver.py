from __future__ import annotations

from catalog.models import AudioFeatureVector, ReferenceTrack
from catalog.reference_resolver import ReferenceTrackResolver, extract_song_and_artist, reference_query


class _FakeCatalog:
    def __init__(self, item=None, features=None):
        self.item = item
        self.features = features
        self.queries: list[str] = []
        self.feature_ids: list[str] = []

    def first_raw_item(self, query: str, limit: int = 5):
        self.queries.append(query)
        return self.item

    def audio_features(self, track_id: str):
        self.feature_ids.append(track_id)
        return self.features


BOHEMIAN = {
    "id": "4u7EnebtmKWzUH433cf5Qv",
    "name": "Bohemian Rhapsody - Remastered 2011",
    "artists": [{"name": "Queen"}],
    "album": {"name": "A Night At The Opera", "genres": ["classic rock", "glam rock"]},
    "external_urls": {"spotify": "https://open.spotify.com/track/4u7EnebtmKWzUH433cf5Qv"},
}


def test_extracts_single_quoted_title_and_artist():
    assert extract_song_and_artist("find me songs similar to 'Bohemian Rhapsody' by Queen") == (
        "Bohemian Rhapsody",
        "Queen",
    )


def test_extracts_double_quoted_title_and_stops_artist_at_comma():
    prompt = 'something like "Ang Huling El Bimbo" by Eraserheads, but slower'
    assert extract_song_and_artist(prompt) == ("Ang Huling El Bimbo", "Eraserheads")


def test_mood_prompts_have_no_reference():
    assert extract_song_and_artist("something upbeat for a road trip") is None
    assert extract_song_and_artist("songs by Queen") is None
    assert extract_song_and_artist("") is None


def test_resolve_looks_up_field_scoped_query():
    catalog = _FakeCatalog(item=BOHEMIAN)
    track = ReferenceTrackResolver(catalog).resolve("find me songs similar to 'Bohemian Rhapsody' by Queen")

    assert catalog.queries == ['track:"Bohemian Rhapsody" artist:"Queen"']
    assert track is not None
    assert track.id == "4u7EnebtmKWzUH433cf5Qv"
    assert track.primary_artist == "Queen"
    assert track.album_name == "A Night At The Opera"
    assert track.genre_tags == ("classic rock", "glam rock")


def test_resolve_returns_none_without_catalog_hit():
    catalog = _FakeCatalog(item=None)
    resolver = ReferenceTrackResolver(catalog)

    assert resolver.resolve("'Nonexistent Song' by Nobody") is None
    assert resolver.resolve_with_features("'Nonexistent Song' by Nobody") is None
    assert catalog.feature_ids == []


def test_resolve_skips_catalog_for_mood_prompt():
    catalog = _FakeCatalog(item=BOHEMIAN)
    assert ReferenceTrackResolver(catalog).resolve("something upbeat for a road trip") is None
    assert catalog.queries == []


def test_resolve_with_features_fetches_vector_for_resolved_track():
    vector = AudioFeatureVector(energy=0.4, valence=0.22, tempo_bpm=143.9)
    catalog = _FakeCatalog(item=BOHEMIAN, features=vector)

    resolved = ReferenceTrackResolver(catalog).resolve_with_features("'Bohemian Rhapsody' by Queen")

    assert resolved is not None
    track, features = resolved
    assert features == vector
    assert catalog.feature_ids == [track.id]


def test_reference_query_quotes_both_fields():
    assert reference_query("Tadhana", "Up Dharma Down") == 'track:"Tadhana" artist:"Up Dharma Down"'


def test_genre_tags_keep_catalog_order():
    payload = dict(BOHEMIAN, album={"name": "Opera", "genres": ["rock", "art rock", " ", "rock", "baroque pop"]})
    assert ReferenceTrack.from_payload(payload).genre_tags == ("rock", "art rock", "baroque pop")
