from __future__ import annotations

import json
import threading

import pytest

from errors import PromptError
from features.recommendation import build_services
from settings import Settings


class _Response:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


def _item(track_id: str, name: str, artist: str, popularity: int) -> dict:
    return {
        "id": track_id,
        "name": name,
        "artists": [{"name": artist}],
        "album": {"name": f"{name} (Album)", "images": [], "genres": ["opm"]},
        "popularity": popularity,
        "preview_url": None,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


REFERENCE_ITEM = _item("ref-1", "Tadhana", "Up Dharma Down", 80)


class _CatalogHttp:
    def __init__(self):
        self.lock = threading.Lock()
        self.search_queries: list[str] = []
        self.token_requests = 0

    def __call__(self, method, url, timeout=None, params=None, data=None, headers=None):
        if url == "https://accounts.spotify.com/api/token":
            with self.lock:
                self.token_requests += 1
            return _Response(200, {"access_token": "tok", "expires_in": 3600})
        if url == "https://api.spotify.com/v1/search":
            assert headers == {"Authorization": "Bearer tok"}
            query = params["q"]
            with self.lock:
                self.search_queries.append(query)
            if query.startswith('track:"Tadhana"'):
                return _Response(200, {"tracks": {"items": [REFERENCE_ITEM]}})
            slug = query.split()[0].lower()
            items = [_item(f"{slug}-{index}", f"{slug} song {index}", "Someone", 10 * index) for index in range(3)]
            items.append(_item("shared", "Shared Hit", "Everyone", 99))
            return _Response(200, {"tracks": {"items": items}})
        if url == "https://api.spotify.com/v1/audio-features/ref-1":
            return _Response(200, {"energy": 0.35, "valence": 0.2, "tempo": 120})
        if url.startswith("https://ws.audioscrobbler.com/"):
            if params["method"] == "artist.gettoptags":
                return _Response(200, {"toptags": {"tag": [{"name": "pinoy indie", "count": 100}, {"name": "dream pop", "count": 70}]}})
            return _Response(200, {"artist": {"name": params["artist"]}})
        return _Response(404)


SETTINGS = Settings(
    spotify_client_id="id",
    spotify_client_secret="secret",
    lastfm_api_key="lfm",
    relays=(),
)


def test_reference_prompt_runs_full_pipeline():
    http = _CatalogHttp()
    instructions: list[str] = []

    def _generate(prompt: str, system_instruction: str) -> str:
        instructions.append(system_instruction)
        return json.dumps(
            [
                "pinoy indie mellow female vocals",
                "dream pop Tagalog low energy",
                "Tadhana acoustic",
                "artist:Rivermaya OR artist:Sandwich",
                "tempo:110-130 year:2005-2015 energy:0.3-0.5",
            ]
        )

    services = build_services(SETTINGS, generate=_generate, http=http)
    result = services.pipeline.recommend("songs like 'Tadhana' by Up Dharma Down")

    assert result.mode == "reference"
    assert result.reference.id == "ref-1"
    assert [query.text for query in result.queries] == [
        "pinoy indie mellow female vocals",
        "dream pop Tagalog low energy",
        "artist:Rivermaya OR artist:Sandwich",
        "tempo:110-130 year:2005-2015 energy:0.3-0.5",
    ]
    assert "pinoy indie, dream pop" in instructions[0]
    assert "Energy: 0.35/1.0" in instructions[0]

    ids = result.results.track_ids
    assert len(ids) == len(set(ids))
    # "shared" appears in every batch; the tier-0 sighting wins and it leads on popularity
    assert ids[0] == "shared"
    assert result.results.items[0].priority_tier == 0
    assert http.token_requests == 1

    payload = result.to_dict()
    assert payload["reference"]["title"] == "Tadhana"
    assert payload["queries"][0] == {"text": "pinoy indie mellow female vocals", "tier": 0}


def test_mood_prompt_without_model_searches_the_prompt_itself():
    http = _CatalogHttp()

    def _generate(prompt: str, system_instruction: str) -> str:
        raise RuntimeError("model offline")

    services = build_services(SETTINGS, generate=_generate, http=http)
    result = services.pipeline.recommend("  rainy day jazz  ")

    assert result.mode == "mood"
    assert result.reference is None
    assert [(query.text, query.tier) for query in result.queries] == [("rainy day jazz", 0)]
    assert http.search_queries == ["rainy day jazz"]
    assert result.results.track_ids[0] == "shared"


def test_catalog_outage_yields_placeholder_results():
    def _http(method, url, timeout=None, **kwargs):
        return _Response(503)

    services = build_services(SETTINGS, generate=lambda prompt, instruction: '["a b", "c d", "e f"]', http=_http)
    result = services.pipeline.recommend("something upbeat for a road trip")

    assert result.mode == "mood"
    # placeholder ids repeat across batches and collapse after de-duplication
    assert result.results.track_ids == ["1", "2"]


def test_blank_prompt_is_rejected():
    services = build_services(SETTINGS, generate=lambda prompt, instruction: "[]", http=_CatalogHttp())
    with pytest.raises(PromptError):
        services.pipeline.recommend("   ")


def test_synthesize_only_skips_search():
    http = _CatalogHttp()
    services = build_services(
        SETTINGS,
        generate=lambda prompt, instruction: '["late night city pop", "80s japanese funk", "smooth synth grooves"]',
        http=http,
    )
    reference, queries = services.pipeline.synthesize("late night drive")

    assert reference is None
    assert len(queries) == 3
    assert http.search_queries == []
