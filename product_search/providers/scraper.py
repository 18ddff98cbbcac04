"""Single-URL fallback provider backed by the page scraper."""

from __future__ import annotations

import hashlib
from typing import Callable, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from affiliate import enhance_url_with_affiliate
from product_search.models import (
    ProviderInfo,
    ProviderStatus,
    SearchOptions,
    SearchProduct,
    SearchResult,
)
from product_search.providers.base import ProductSearchProvider
from product_search.url_scraper import ScrapedProductData, scrape_url


class ScraperProvider(ProductSearchProvider):
    """
    Fetches product details from any URL. It cannot search: `search` always
    returns an empty page rather than failing.
    """

    id = "scraper"
    name = "URL Scraper"
    type = "scraper"

    def __init__(self, cache: Optional[Callable[[], AsyncSession]] = None):
        self.cache = cache

    def is_configured(self) -> bool:
        return True

    async def get_status(self) -> ProviderStatus:
        return "available"

    async def get_info(self) -> ProviderInfo:
        return ProviderInfo(
            id=self.id,
            name=self.name,
            type=self.type,
            status="available",
            supports_ean_lookup=False,
        )

    async def search(self, options: SearchOptions) -> SearchResult:
        return SearchResult(
            products=[],
            total_results=0,
            page=1,
            page_size=0,
            has_more=False,
            provider=self.id,
        )

    async def scrape_product_url(self, url: str) -> Optional[SearchProduct]:
        data = await scrape_url(url, cache=self.cache)
        if not data or not data.title:
            return None

        product = self._to_product(url, data)
        if self.cache:
            async with self.cache() as session:
                product.affiliate_url = await enhance_url_with_affiliate(session, url)
        return product

    def generate_affiliate_link(self, url: str, sub_id: Optional[str] = None) -> str:
        return url

    def matches_url(self, url: str) -> bool:
        return True

    @staticmethod
    def product_id_for_url(url: str) -> str:
        return "scrape_" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]

    def _to_product(self, url: str, data: ScrapedProductData) -> SearchProduct:
        return SearchProduct(
            id=self.product_id_for_url(url),
            provider_id=self.id,
            title=data.title,
            description=data.description,
            price=data.price,
            currency=data.currency or "EUR",
            url=url,
            image_url=data.image_url,
            availability="unknown",
        )
