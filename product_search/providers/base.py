"""Capability interface implemented by every product search provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from product_search.models import (
    ProviderInfo,
    ProviderStatus,
    ProviderType,
    SearchOptions,
    SearchProduct,
    SearchResult,
)


class ProductSearchProvider(ABC):
    """
    A source of products: a live retailer API, an imported feed, a scraper
    or a search index.

    Implementations expose `id`, `name` and `type` as class attributes.
    Only `search` is expected to raise; the registry isolates those failures
    per provider.
    """

    id: str
    name: str
    type: ProviderType

    @abstractmethod
    def is_configured(self) -> bool:
        """Credentials/config present. Must not perform I/O."""

    @abstractmethod
    async def get_status(self) -> ProviderStatus:
        ...

    @abstractmethod
    async def get_info(self) -> ProviderInfo:
        ...

    @abstractmethod
    async def search(self, options: SearchOptions) -> SearchResult:
        ...

    async def get_by_ean(self, ean: str) -> Optional[SearchProduct]:
        return None

    @abstractmethod
    def generate_affiliate_link(self, url: str, sub_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    def matches_url(self, url: str) -> bool:
        ...

    def _empty_result(self, options: SearchOptions) -> SearchResult:
        return SearchResult(
            products=[],
            total_results=0,
            page=options.page,
            page_size=options.page_size,
            has_more=False,
            provider=self.id,
        )
