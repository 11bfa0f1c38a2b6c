from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ai.query_synthesizer import GenerateCallable, QuerySynthesizer
from catalog.aggregator import ResultAggregator
from catalog.channels import BackendProxyChannel, ChannelChain, DirectChannel, HttpCallable, build_channels
from catalog.enrichment import EnrichmentClient
from catalog.models import RankedResultSet, ReferenceTrack, SynthesizedQuery
from catalog.reference_resolver import ReferenceTrackResolver
from catalog.search_client import CatalogSearchClient
from catalog.token_provider import CatalogTokenProvider, TokenCache
from errors import PromptError
from features.playback import PreviewResolver
from settings import Settings, load_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecommendationResult:
    prompt: str
    mode: str
    reference: ReferenceTrack | None
    queries: tuple[SynthesizedQuery, ...]
    results: RankedResultSet

    def to_dict(self) -> dict[str, Any]:
        reference = None
        if self.reference is not None:
            reference = {
                "id": self.reference.id,
                "title": self.reference.title,
                "artists": list(self.reference.artist_names),
                "album": self.reference.album_name,
                "external_url": self.reference.external_url,
            }
        return {
            "prompt": self.prompt,
            "mode": self.mode,
            "reference": reference,
            "queries": [{"text": query.text, "tier": query.tier} for query in self.queries],
            "results": self.results.to_list(),
        }


class RecommendationPipeline:
    def __init__(
        self,
        resolver: ReferenceTrackResolver,
        enrichment: EnrichmentClient,
        synthesizer: QuerySynthesizer,
        aggregator: ResultAggregator,
    ) -> None:
        self.resolver = resolver
        self.enrichment = enrichment
        self.synthesizer = synthesizer
        self.aggregator = aggregator

    def synthesize(self, prompt: str) -> tuple[ReferenceTrack | None, list[SynthesizedQuery]]:
        prompt = (prompt or "").strip()
        if not prompt:
            raise PromptError("Missing search query. Go back and try again.")

        resolved = self.resolver.resolve_with_features(prompt)
        if resolved is None:
            LOGGER.info("No reference track for prompt; using mood mode")
            return None, self.synthesizer.synthesize(prompt)

        reference, features = resolved
        context = self.enrichment.get_context(reference.primary_artist)
        return reference, self.synthesizer.synthesize(prompt, reference, features, context)

    def recommend(self, prompt: str) -> RecommendationResult:
        reference, queries = self.synthesize(prompt)
        LOGGER.info("Searching catalog with %s smart queries", len(queries))
        results = self.aggregator.aggregate(queries)
        return RecommendationResult(
            prompt=prompt.strip(),
            mode="reference" if reference is not None else "mood",
            reference=reference,
            queries=tuple(queries),
            results=results,
        )


@dataclass
class Services:
    settings: Settings
    token_provider: CatalogTokenProvider
    catalog: CatalogSearchClient
    enrichment: EnrichmentClient
    previews: PreviewResolver
    pipeline: RecommendationPipeline
    upstream_catalog: CatalogSearchClient
    upstream_enrichment: EnrichmentClient


def build_services(
    settings: Settings | None = None,
    *,
    generate: GenerateCallable | None = None,
    http: HttpCallable | None = None,
) -> Services:
    """Wire every component from one settings object.

    ``upstream_catalog`` and ``upstream_enrichment`` skip the backend proxy; they back this service's own
    proxy routes so those never call themselves.
    """
    settings = settings or load_settings()
    timeout = settings.http_timeout_seconds
    token_provider = CatalogTokenProvider(
        settings,
        cache=TokenCache(safety_margin_ms=settings.token_safety_margin_seconds * 1000),
        chain=ChannelChain(build_channels(settings, http=http)),
    )
    upstream_token_provider = CatalogTokenProvider(
        settings,
        cache=token_provider.cache,
        chain=ChannelChain(build_channels(settings, include_proxy=False, http=http)),
    )
    catalog = CatalogSearchClient(
        settings,
        token_provider,
        chain=ChannelChain(build_channels(settings, http=http), token_supplier=token_provider.get_token),
    )
    upstream_catalog = CatalogSearchClient(
        settings,
        upstream_token_provider,
        chain=ChannelChain(
            build_channels(settings, include_proxy=False, http=http),
            token_supplier=upstream_token_provider.get_token,
        ),
    )
    proxy = BackendProxyChannel(settings.catalog_proxy_url, timeout=timeout, http=http) if settings.catalog_proxy_url else None
    enrichment = EnrichmentClient(settings, proxy=proxy, http=http)
    previews = PreviewResolver(token_provider, proxy=proxy, direct=DirectChannel(timeout=timeout, http=http))
    pipeline = RecommendationPipeline(
        resolver=ReferenceTrackResolver(catalog),
        enrichment=enrichment,
        synthesizer=QuerySynthesizer(generate, settings=settings),
        aggregator=ResultAggregator(
            lambda query: catalog.search(query, settings.search_limit),
            display_cap=settings.display_cap,
        ),
    )
    return Services(
        settings=settings,
        token_provider=token_provider,
        catalog=catalog,
        enrichment=enrichment,
        previews=previews,
        pipeline=pipeline,
        upstream_catalog=upstream_catalog,
        upstream_enrichment=EnrichmentClient(settings, http=http, use_proxy=False),
    )
