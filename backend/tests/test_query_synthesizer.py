from __future__ import annotations

import json
import random
import string

import pytest

from ai.ai import AIServiceError
from ai.query_synthesizer import QuerySynthesizer, build_reference_instruction
from catalog.models import AudioFeatureVector, EnrichmentContext, ReferenceTrack, Tag
from settings import Settings


REFERENCE = ReferenceTrack(
    id="trk-1",
    title="Tadhana",
    artist_names=("Up Dharma Down",),
    album_name="Capacities",
    genre_tags=("opm",),
)
FEATURES = AudioFeatureVector(energy=0.42, valence=0.31, tempo_bpm=118.0)
ENRICHMENT = EnrichmentContext(
    artist_summary={"name": "Up Dharma Down"},
    top_tags=(Tag("pinoy indie", 100), Tag("dream pop", 80), Tag("melancholic", 55)),
)


def _synthesizer(generate, **overrides) -> QuerySynthesizer:
    return QuerySynthesizer(generate, settings=Settings(**overrides))


def _replying(payload):
    def _generate(prompt: str, system_instruction: str) -> str:
        return payload if isinstance(payload, str) else json.dumps(payload)

    return _generate


def test_reference_instruction_embeds_track_features_and_tags():
    instruction = build_reference_instruction(REFERENCE, FEATURES, ENRICHMENT)

    assert "- Title: Tadhana" in instruction
    assert "- Album: Capacities" in instruction
    assert "Energy: 0.42/1.0" in instruction
    assert "Tempo: 118 BPM" in instruction
    assert "pinoy indie, dream pop, melancholic" in instruction
    assert "Do NOT include the original song's title" in instruction
    assert "artist:Urbandub OR artist:Eraserheads" in instruction


def test_reference_instruction_marks_missing_features_unknown():
    instruction = build_reference_instruction(REFERENCE, None, EnrichmentContext.empty())
    assert "Energy: Unknown/1.0" in instruction
    assert "None available" in instruction


def test_reference_mode_uses_enrichment_tags_and_excludes_title():
    generated = [
        'genre:"OPM" "pinoy indie" mellow low energy',
        '"dream pop" Tagalog valence:0.2-0.4',
        "artist:Rivermaya OR artist:Sandwich",
        "artist:Cup of Joe OR artist:Ben&Ben",
        "melancholic female vocals OPM slow burn",
        "tempo:110-125 year:2008-2016 energy:0.3-0.5",
    ]
    seen_prompts: list[tuple[str, str]] = []

    def _generate(prompt: str, system_instruction: str) -> str:
        seen_prompts.append((prompt, system_instruction))
        return json.dumps(generated)

    queries = _synthesizer(_generate).synthesize(
        "songs like 'Tadhana' by Up Dharma Down", REFERENCE, FEATURES, ENRICHMENT
    )

    assert len(queries) >= 4
    assert [query.tier for query in queries] == list(range(len(queries)))
    tag_names = {tag.name.lower() for tag in ENRICHMENT.top_tags}
    with_tags = [query for query in queries if any(tag in query.text.lower() for tag in tag_names)]
    assert len(with_tags) >= 2
    assert all("tadhana" not in query.text.lower() for query in queries)
    assert seen_prompts[0][0] == "Original request: songs like 'Tadhana' by Up Dharma Down"


def test_reference_mode_falls_back_when_model_raises():
    def _generate(prompt: str, system_instruction: str) -> str:
        raise AIServiceError("quota", status_code=429, error_code="AI_RATE_LIMITED")

    queries = _synthesizer(_generate).synthesize("x", REFERENCE, FEATURES, ENRICHMENT)

    assert [query.text for query in queries] == [
        'genre:"opm"',
        'artist:"similar to Up Dharma Down"',
        "vibe of Tadhana",
    ]
    assert [query.tier for query in queries] == [0, 1, 2]


def test_reference_fallback_defaults_genre_to_indie():
    reference = ReferenceTrack(id="t", title="Halik", artist_names=("Kamikazee",))
    queries = _synthesizer(_replying("sorry, I cannot help")).synthesize("x", reference)
    assert [query.text for query in queries] == ['genre:"indie"', 'artist:"similar to Kamikazee"', "vibe of Halik"]


def test_reference_mode_drops_queries_naming_the_reference():
    generated = [
        "Tadhana acoustic cover",
        "up dharma down live",
        "Capacities deluxe",
        "pinoy indie dream pop",
        "artist:Rivermaya OR artist:Sandwich",
        "tempo:110-125 year:2008-2016 energy:0.3-0.5",
    ]
    queries = _synthesizer(_replying(generated)).synthesize("x", REFERENCE, FEATURES, ENRICHMENT)
    assert [query.text for query in queries] == generated[3:]
    assert [query.tier for query in queries] == [0, 1, 2]


def test_short_reference_names_only_exclude_whole_words():
    reference = ReferenceTrack(id="low-1", title="Words", artist_names=("Low",), album_name="Things We Lost in the Fire")
    generated = [
        "slowcore melancholic",
        "mellow lowercase indie",
        "artist:Low OR artist:Duster",
        "hollow sadcore 90s",
        "swordsman folk ballads",
    ]
    queries = _synthesizer(_replying(generated)).synthesize("x", reference)

    assert [query.text for query in queries] == [
        "slowcore melancholic",
        "mellow lowercase indie",
        "hollow sadcore 90s",
        "swordsman folk ballads",
    ]


def test_fallback_uses_catalog_primary_genre():
    reference = ReferenceTrack(id="r", title="Paranoid Android", artist_names=("Radiohead",), genre_tags=("rock", "art rock"))
    queries = _synthesizer(_replying("no json here")).synthesize("x", reference)

    assert queries[0].text == 'genre:"rock"'
    assert "- Genres: rock, art rock" in build_reference_instruction(reference, None, None)


def test_reference_mode_falls_back_when_exclusion_leaves_too_few():
    generated = ["Tadhana remix", "Up Dharma Down acoustic", "Capacities", "pinoy indie"]
    queries = _synthesizer(_replying(generated)).synthesize("x", REFERENCE, FEATURES, ENRICHMENT)
    assert [query.text for query in queries][2] == "vibe of Tadhana"


def test_reference_mode_keeps_model_output_when_exclusion_disabled():
    generated = ["Tadhana remix", "pinoy indie", "dream pop", "melancholic OPM"]
    queries = _synthesizer(_replying(generated), enforce_query_exclusion=False).synthesize(
        "x", REFERENCE, FEATURES, ENRICHMENT
    )
    assert queries[0].text == "Tadhana remix"


def test_output_is_truncated_to_six_queries():
    generated = [f"query number {index}" for index in range(9)]
    queries = _synthesizer(_replying(generated)).synthesize("something chill")
    assert len(queries) == 6
    assert queries[-1].tier == 5


def test_mood_mode_falls_back_to_original_prompt():
    def _generate(prompt: str, system_instruction: str) -> str:
        raise RuntimeError("network down")

    queries = _synthesizer(_generate).synthesize("  something upbeat for a road trip ")
    assert [(query.text, query.tier) for query in queries] == [("something upbeat for a road trip", 0)]


def test_mood_mode_uses_generated_terms():
    generated = ["upbeat 2000s pop punk", "feel good indie road trip anthems", "sunny 70s soft rock", "energetic synthpop"]
    seen: dict[str, str] = {}

    def _generate(prompt: str, system_instruction: str) -> str:
        seen["prompt"] = prompt
        seen["instruction"] = system_instruction
        return json.dumps(generated)

    queries = _synthesizer(_generate).synthesize("something upbeat for a road trip")
    assert [query.text for query in queries] == generated
    assert seen["prompt"] == "User prompt: something upbeat for a road trip"
    assert "expert music curator" in seen["instruction"]


@pytest.mark.parametrize("seed", range(25))
def test_generated_reference_queries_never_contain_title_or_artist(seed):
    rng = random.Random(seed)

    def _word(low: int = 5, high: int = 9) -> str:
        return "".join(rng.choice(string.ascii_letters) for _ in range(rng.randint(low, high)))

    title = " ".join(_word() for _ in range(rng.randint(1, 3)))
    artist = " ".join(_word() for _ in range(rng.randint(1, 2)))
    reference = ReferenceTrack(id="r", title=title, artist_names=(artist,), album_name=_word())

    pool = [
        f"{title} live",
        f"artist:{artist.upper()} OR artist:someone",
        f"songs like {title.lower()}",
        "tempo:100-120 year:2010-2020 energy:0.5-0.7",
        "moody lo-fi 0-9 bedroom pop",
        "artist:Phoebe0 OR artist:Japanese1",
        "valence:0.1-0.3 slowcore 123",
        "1990s shoegaze 0.8",
    ]
    rng.shuffle(pool)
    queries = _synthesizer(_replying(pool)).synthesize("x", reference)

    assert 3 <= len(queries) <= 6
    texts = [query.text.lower() for query in queries]
    if texts[-1] != f"vibe of {title}".lower():
        assert all(title.lower() not in text and artist.lower() not in text for text in texts)
