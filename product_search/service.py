"""
Product search facade used by the HTTP routes.

Built-in providers are registered at construction. Feed providers come from
the database and are loaded on first use, once, even when several requests
arrive together.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from database import async_session_maker
from observability.metrics import searches_total
from product_search.models import (
    AggregatedSearchResult,
    ProviderInfo,
    SearchOptions,
    SearchProduct,
)
from product_search.providers.base import ProductSearchProvider
from product_search.providers.bolcom import BolcomProvider
from product_search.providers.feed import load_feed_providers
from product_search.providers.scraper import ScraperProvider
from product_search.providers.search_index import SearchIndexProvider
from product_search.registry import ProviderRegistry

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


class LoadState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"


class FeedProviderLoader:
    """Registers feed providers from the database into a registry exactly once."""

    def __init__(self, registry: ProviderRegistry, session_factory: Optional[SessionFactory] = None):
        self.registry = registry
        self.session_factory = session_factory or async_session_maker
        self.state = LoadState.NOT_LOADED
        self._lock = asyncio.Lock()

    async def ensure_loaded(self) -> None:
        if self.state == LoadState.LOADED:
            return

        async with self._lock:
            if self.state == LoadState.LOADED:
                return
            self.state = LoadState.LOADING
            try:
                async with self.session_factory() as session:
                    providers = await load_feed_providers(session, self.session_factory)
                for provider in providers:
                    self.registry.register(provider)
                self.state = LoadState.LOADED
                logger.info(f"[FeedProviderLoader] Registered {len(providers)} feed providers")
            except Exception as e:
                # Left unloaded so the next request retries
                self.state = LoadState.NOT_LOADED
                logger.error(f"[FeedProviderLoader] Failed to load feed providers: {e}")

    async def reload(self) -> None:
        async with self._lock:
            removed = self.registry.unregister_type("feed")
            self.state = LoadState.NOT_LOADED
            logger.info(f"[FeedProviderLoader] Unregistered {removed} feed providers for reload")
        await self.ensure_loaded()


class ProductSearchService:
    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        scraper: Optional[ScraperProvider] = None,
        feed_loader: Optional[FeedProviderLoader] = None,
        session_factory: Optional[SessionFactory] = None,
        builtin_providers: Optional[List[ProductSearchProvider]] = None,
    ):
        session_factory = session_factory or async_session_maker
        self.registry = registry or ProviderRegistry()
        self.scraper = scraper or ScraperProvider(cache=session_factory)

        if builtin_providers is None:
            builtin_providers = [BolcomProvider(), SearchIndexProvider()]
        for provider in builtin_providers:
            self.registry.register(provider)
        self.registry.register(self.scraper)

        self.feed_loader = feed_loader or FeedProviderLoader(self.registry, session_factory)

    async def search_products(self, options: SearchOptions) -> AggregatedSearchResult:
        await self.feed_loader.ensure_loaded()
        searches_total.labels(mode="aggregated").inc()
        return await self.registry.search_all(options)

    async def search_provider(self, provider_id: str, options: SearchOptions) -> AggregatedSearchResult:
        await self.feed_loader.ensure_loaded()
        searches_total.labels(mode="single").inc()
        return await self.registry.search_provider(provider_id, options)

    async def get_providers(self) -> List[ProviderInfo]:
        await self.feed_loader.ensure_loaded()
        return await self.registry.get_all_info()

    async def lookup_by_ean(self, ean: str) -> Optional[SearchProduct]:
        await self.feed_loader.ensure_loaded()
        searches_total.labels(mode="ean").inc()
        return await self.registry.lookup_by_ean(ean)

    def find_provider_for_url(self, url: str) -> Optional[ProductSearchProvider]:
        return self.registry.find_provider_for_url(url)

    async def is_search_available(self) -> bool:
        await self.feed_loader.ensure_loaded()
        enabled = await self.registry.get_enabled()
        return any(p.type != "scraper" for p in enabled)

    async def scrape_product_url(self, url: str) -> Optional[SearchProduct]:
        return await self.scraper.scrape_product_url(url)

    async def reload_feed_providers(self) -> None:
        await self.feed_loader.reload()


_search_service: Optional[ProductSearchService] = None


def get_search_service() -> ProductSearchService:
    global _search_service
    if _search_service is None:
        _search_service = ProductSearchService()
    return _search_service
