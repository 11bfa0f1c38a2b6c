from __future__ import annotations

import argparse
import json
import logging
import sys

from errors import PromptError
from features.recommendation import build_services
from settings import load_settings

LOGGER = logging.getLogger("recommend_cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find songs similar to a prompt or a \"'song' by artist\" reference.")
    parser.add_argument("prompt", nargs="+", help="free text, e.g. \"find me 'Bohemian Rhapsody' by Queen\"")
    parser.add_argument("--limit", type=int, default=10, help="number of tracks to print")
    parser.add_argument("--json", action="store_true", help="print the full result as JSON")
    parser.add_argument("--queries-only", action="store_true", help="only synthesize queries, skip catalog search")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    prompt = " ".join(args.prompt)
    pipeline = build_services(settings).pipeline

    try:
        if args.queries_only:
            reference, queries = pipeline.synthesize(prompt)
            if args.json:
                print(json.dumps([{"text": query.text, "tier": query.tier} for query in queries], indent=2))
            else:
                if reference is not None:
                    print(f"Reference: {reference.title} - {', '.join(reference.artist_names)}")
                for query in queries:
                    print(f"[{query.tier}] {query.text}")
            return 0

        result = pipeline.recommend(prompt)
    except PromptError as exc:
        LOGGER.error("%s", exc)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    if result.reference is not None:
        print(f"Reference: {result.reference.title} - {', '.join(result.reference.artist_names)}")
    print("Queries:")
    for query in result.queries:
        print(f"  [{query.tier}] {query.text}")
    if not len(result.results):
        print("No songs found.")
        return 0
    print("Tracks:")
    for ranked in list(result.results)[: max(1, args.limit)]:
        track = ranked.track
        print(f"  {track.name} - {', '.join(track.artist_names)} (tier {ranked.priority_tier}, popularity {track.popularity})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
