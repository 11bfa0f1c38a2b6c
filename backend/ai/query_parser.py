from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Union

MIN_QUERIES = 3
MAX_QUERIES = 6
MAX_QUERY_LENGTH = 250


@dataclass(frozen=True)
class ParsedList:
    items: tuple[str, ...]


@dataclass(frozen=True)
class ParseFailure:
    reason: str


ParseResult = Union[ParsedList, ParseFailure]


def _json_candidates(raw_text: str) -> list[str]:
    text = raw_text.strip()
    candidates = [text]
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    bracketed = re.search(r"\[[\s\S]*\]", text)
    if bracketed:
        candidates.append(bracketed.group(0))
    return candidates


def normalize_queries(values: list[object]) -> list[str]:
    queries: list[str] = []
    seen: set[str] = set()
    for value in values:
        if not isinstance(value, str):
            continue
        query = re.sub(r"\s+", " ", value).strip()
        if not query:
            continue
        key = query.lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(query[:MAX_QUERY_LENGTH])
    return queries


def parse_query_list(raw_text: str | None, *, minimum: int = MIN_QUERIES, maximum: int = MAX_QUERIES) -> ParseResult:
    """Read a JSON array of query strings out of model output."""
    if not raw_text or not raw_text.strip():
        return ParseFailure("empty response")

    parsed: object = None
    for candidate in _json_candidates(raw_text):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        # first candidate that is valid JSON decides
        break
    if not isinstance(parsed, list):
        return ParseFailure("response is not a JSON array")

    queries = normalize_queries(parsed)
    if not queries:
        return ParseFailure("array holds no usable strings")
    if len(queries) < minimum:
        return ParseFailure(f"only {len(queries)} usable queries")
    return ParsedList(tuple(queries[:maximum]))
