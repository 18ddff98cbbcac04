"""Provider registry and multi-provider search aggregation."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from product_search.executors import run_provider_search
from product_search.models import (
    AggregatedSearchResult,
    ProviderInfo,
    ProviderSearchSummary,
    ProviderType,
    SearchOptions,
    SearchProduct,
)
from product_search.providers.base import ProductSearchProvider

logger = logging.getLogger(__name__)


def interleave_results(
    results_by_provider: Dict[str, List[SearchProduct]],
    provider_order: Sequence[str],
) -> List[SearchProduct]:
    """
    Round-robin merge: one item per provider per round, in `provider_order`,
    until every list is exhausted. Per-provider order is preserved.
    """
    merged: List[SearchProduct] = []
    index = 0
    while True:
        emitted = False
        for provider_id in provider_order:
            products = results_by_provider.get(provider_id) or []
            if index < len(products):
                merged.append(products[index])
                emitted = True
        if not emitted:
            return merged
        index += 1


class ProviderRegistry:
    """
    Holds providers by id, in registration order, and fans searches out to
    the ones that are currently live.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, ProductSearchProvider] = {}

    def register(self, provider: ProductSearchProvider) -> None:
        if provider.id in self._providers:
            logger.info(f"[ProviderRegistry] Replacing provider {provider.id}")
        self._providers[provider.id] = provider
        logger.debug(f"[ProviderRegistry] Registered provider {provider.id}")

    def unregister_type(self, provider_type: ProviderType) -> int:
        stale = [pid for pid, p in self._providers.items() if p.type == provider_type]
        for pid in stale:
            del self._providers[pid]
        return len(stale)

    def get(self, provider_id: str) -> Optional[ProductSearchProvider]:
        return self._providers.get(provider_id)

    def get_all(self) -> List[ProductSearchProvider]:
        return list(self._providers.values())

    async def _is_live(self, provider: ProductSearchProvider) -> bool:
        if not provider.is_configured():
            return False
        try:
            return await provider.get_status() == "available"
        except Exception as e:
            logger.warning(f"[ProviderRegistry] Status check failed for {provider.id}: {e}")
            return False

    async def get_enabled(self) -> List[ProductSearchProvider]:
        """Configured providers whose live status is `available`. Checked on every call."""
        providers = self.get_all()
        live = await asyncio.gather(*(self._is_live(p) for p in providers))
        return [p for p, ok in zip(providers, live) if ok]

    async def get_all_info(self) -> List[ProviderInfo]:
        return list(await asyncio.gather(*(p.get_info() for p in self.get_all())))

    async def search_all(self, options: SearchOptions) -> AggregatedSearchResult:
        enabled = await self.get_enabled()
        if not enabled:
            return AggregatedSearchResult(page=options.page, page_size=options.page_size)

        outcomes = await asyncio.gather(*(run_provider_search(p, options) for p in enabled))

        summaries: List[ProviderSearchSummary] = []
        by_provider: Dict[str, List[SearchProduct]] = {}
        total_results = 0
        for result, summary in outcomes:
            summaries.append(summary)
            if result is None:
                continue
            by_provider[summary.id] = list(result.products)
            total_results += result.total_results

        products = interleave_results(by_provider, [s.id for s in summaries])

        return AggregatedSearchResult(
            products=products[: options.page_size],
            total_results=total_results,
            page=options.page,
            page_size=options.page_size,
            providers=summaries,
        )

    async def search_provider(self, provider_id: str, options: SearchOptions) -> AggregatedSearchResult:
        """Search one provider, reporting failures in the summary instead of raising."""
        provider = self.get(provider_id)
        if not provider:
            return self._failed(options, ProviderSearchSummary(
                id=provider_id, name=provider_id, error="Provider not found",
            ))
        if not provider.is_configured():
            return self._failed(options, ProviderSearchSummary(
                id=provider_id, name=provider.name, error="Provider not configured",
            ))

        result, summary = await run_provider_search(provider, options)
        if result is None:
            return self._failed(options, summary)

        return AggregatedSearchResult(
            products=result.products,
            total_results=result.total_results,
            page=result.page,
            page_size=result.page_size,
            providers=[summary],
        )

    async def lookup_by_ean(self, ean: str) -> Optional[SearchProduct]:
        """First hit wins, walking enabled providers in registration order."""
        for provider in await self.get_enabled():
            try:
                product = await provider.get_by_ean(ean)
            except Exception as e:
                logger.warning(f"[ProviderRegistry] EAN lookup failed on {provider.id} for {ean}: {e}")
                continue
            if product:
                return product
        return None

    def find_provider_for_url(self, url: str) -> Optional[ProductSearchProvider]:
        """First registered provider claiming the URL; scrapers only as the catch-all."""
        ordered = sorted(self._providers.values(), key=lambda p: p.type == "scraper")
        for provider in ordered:
            if provider.matches_url(url):
                return provider
        return None

    @staticmethod
    def _failed(options: SearchOptions, summary: ProviderSearchSummary) -> AggregatedSearchResult:
        return AggregatedSearchResult(
            products=[],
            total_results=0,
            page=options.page,
            page_size=options.page_size,
            providers=[summary],
        )
