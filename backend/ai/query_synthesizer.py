from __future__ import annotations

import logging
import re
from typing import Callable, Sequence

from ai.prompts import MOOD_QUERY_SYSTEM_INSTRUCTION, REFERENCE_QUERY_SYSTEM_INSTRUCTION
from ai.query_parser import MAX_QUERIES, MIN_QUERIES, ParseFailure, parse_query_list
from catalog.models import AudioFeatureVector, EnrichmentContext, ReferenceTrack, SynthesizedQuery
from settings import Settings, load_settings

LOGGER = logging.getLogger(__name__)

# (prompt, system_instruction) -> raw model text
GenerateCallable = Callable[[str, str], str]

MAX_PROMPT_TAGS = 10


def _format_number(value: float | None, digits: int = 2) -> str:
    if value is None:
        return "Unknown"
    return f"{value:.{digits}f}"


def build_reference_instruction(
    reference: ReferenceTrack,
    features: AudioFeatureVector | None,
    enrichment: EnrichmentContext | None,
) -> str:
    tags = enrichment.tag_names(MAX_PROMPT_TAGS) if enrichment else []
    return REFERENCE_QUERY_SYSTEM_INSTRUCTION.format(
        title=reference.title,
        artists=", ".join(reference.artist_names) or "Unknown",
        album=reference.album_name or "Unknown",
        genres=", ".join(reference.genre_tags) or "Unknown",
        energy=_format_number(features.energy if features else None),
        valence=_format_number(features.valence if features else None),
        tempo=_format_number(features.tempo_bpm if features else None, 0),
        tags=", ".join(tags) or "None available",
    ).strip()


def reference_fallback_queries(reference: ReferenceTrack) -> list[str]:
    genre = reference.genre_tags[0] if reference.genre_tags else "indie"
    return [
        f'genre:"{genre}"',
        f'artist:"similar to {reference.primary_artist}"',
        f"vibe of {reference.title}",
    ]


def excluded_terms(reference: ReferenceTrack) -> list[str]:
    terms = [reference.title, reference.album_name, *reference.artist_names]
    return [term.strip().lower() for term in terms if term and term.strip()]


def violates_exclusion(query: str, terms: Sequence[str]) -> bool:
    """True when ``query`` names any term as a whole word or phrase."""
    lowered = query.lower()
    return any(re.search(rf"(?<!\w){re.escape(term)}(?!\w)", lowered) for term in terms)


def with_tiers(texts: Sequence[str]) -> list[SynthesizedQuery]:
    return [SynthesizedQuery(text=text, tier=index) for index, text in enumerate(texts[:MAX_QUERIES])]


class QuerySynthesizer:
    """Turns a prompt (and an optional reference track) into ranked catalog queries.

    Never raises: generation or parse problems degrade to deterministic queries.
    """

    def __init__(
        self,
        generate: GenerateCallable | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self._generate = generate or self._default_generate

    def _default_generate(self, prompt: str, system_instruction: str) -> str:
        from ai.ai import generate_with_instruction

        return generate_with_instruction(prompt, system_instruction, settings=self.settings)

    def synthesize(
        self,
        prompt: str,
        reference: ReferenceTrack | None = None,
        features: AudioFeatureVector | None = None,
        enrichment: EnrichmentContext | None = None,
    ) -> list[SynthesizedQuery]:
        if reference is None:
            return self.synthesize_mood(prompt)
        return self.synthesize_reference(prompt, reference, features, enrichment)

    def _generate_queries(self, user_text: str, instruction: str, task_label: str) -> list[str]:
        try:
            raw = self._generate(user_text, instruction)
        except Exception as exc:
            error_code = str(getattr(exc, "error_code", type(exc).__name__))
            LOGGER.warning("%s generation failed (%s); using fallback queries.", task_label, error_code)
            return []

        result = parse_query_list(raw)
        if isinstance(result, ParseFailure):
            LOGGER.warning("%s output unusable (%s); using fallback queries.", task_label, result.reason)
            return []
        return list(result.items)

    def synthesize_reference(
        self,
        prompt: str,
        reference: ReferenceTrack,
        features: AudioFeatureVector | None = None,
        enrichment: EnrichmentContext | None = None,
    ) -> list[SynthesizedQuery]:
        instruction = build_reference_instruction(reference, features, enrichment)
        queries = self._generate_queries(f"Original request: {prompt}", instruction, "Reference query")

        if queries and self.settings.enforce_query_exclusion:
            terms = excluded_terms(reference)
            kept = [query for query in queries if not violates_exclusion(query, terms)]
            if len(kept) < len(queries):
                LOGGER.info("Dropped %s generated queries naming the reference track", len(queries) - len(kept))
            queries = kept

        if len(queries) < MIN_QUERIES:
            fallback = reference_fallback_queries(reference)
            LOGGER.info("Using fallback reference queries: %s", fallback)
            return with_tiers(fallback)

        LOGGER.info("Generated similar song search terms: %s", queries)
        return with_tiers(queries)

    def synthesize_mood(self, prompt: str) -> list[SynthesizedQuery]:
        queries = self._generate_queries(f"User prompt: {prompt}", MOOD_QUERY_SYSTEM_INSTRUCTION.strip(), "Mood query")
        if not queries:
            return with_tiers([prompt.strip()])
        LOGGER.info("Generated mood search terms: %s", queries)
        return with_tiers(queries)
