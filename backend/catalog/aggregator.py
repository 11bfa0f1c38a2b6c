from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence

from catalog.models import CatalogTrackSummary, RankedResultSet, RankedTrack, SynthesizedQuery

LOGGER = logging.getLogger(__name__)

DISPLAY_CAP = 30

SearchCallable = Callable[[str], Sequence[CatalogTrackSummary]]


def merge_batches(
    queries: Sequence[SynthesizedQuery],
    batches: Sequence[Sequence[CatalogTrackSummary]],
    *,
    display_cap: int = DISPLAY_CAP,
) -> RankedResultSet:
    """Merge per-query batches into one ranked, de-duplicated list.

    ``batches[i]`` must come from ``queries[i]``. The first sighting of a track
    decides its priority tier. Ordering is (tier asc, popularity desc) and the
    sort is stable, so equal keys keep their merge order.
    """
    merged: list[RankedTrack] = []
    seen: set[str] = set()
    for query, batch in zip(queries, batches):
        for track in batch or ():
            key = track.id
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(RankedTrack(track=track, priority_tier=query.tier))

    merged.sort(key=lambda item: (item.priority_tier, -(item.track.popularity or 0)))
    return RankedResultSet(items=tuple(merged[: max(0, display_cap)]))


class ResultAggregator:
    def __init__(self, search: SearchCallable, *, display_cap: int = DISPLAY_CAP, max_workers: int = 6) -> None:
        self.search = search
        self.display_cap = display_cap
        self.max_workers = max(1, max_workers)

    def fetch_batches(self, queries: Sequence[SynthesizedQuery]) -> list[list[CatalogTrackSummary]]:
        if not queries:
            return []
        workers = min(self.max_workers, len(queries))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.search, query.text) for query in queries]
            batches = []
            for query, future in zip(queries, futures):
                try:
                    batches.append(list(future.result()))
                except Exception:
                    LOGGER.exception("Search for %r raised; treating its batch as empty", query.text)
                    batches.append([])
        return batches

    def aggregate(self, queries: Sequence[SynthesizedQuery]) -> RankedResultSet:
        batches = self.fetch_batches(queries)
        results = merge_batches(queries, batches, display_cap=self.display_cap)
        LOGGER.info("Aggregated %s queries into %s tracks", len(queries), len(results))
        return results
