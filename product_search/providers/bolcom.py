"""Realtime search against the Bol.com Marketing Catalog API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from product_search.clients.bolcom import BolcomClient, is_bolcom_url
from product_search.models import (
    ProductRating,
    ProviderInfo,
    ProviderStatus,
    SearchOptions,
    SearchProduct,
    SearchResult,
)
from product_search.providers.base import ProductSearchProvider

logger = logging.getLogger(__name__)

_SORT_MAP = {
    "relevance": "RELEVANCE",
    "price_asc": "PRICE_ASC",
    "price_desc": "PRICE_DESC",
    "rating": "RATING",
}


class BolcomProvider(ProductSearchProvider):
    id = "bolcom"
    name = "Bol.com"
    type = "realtime"

    def __init__(self, client: Optional[BolcomClient] = None):
        self.client = client or BolcomClient()

    def is_configured(self) -> bool:
        return self.client.is_configured()

    async def get_status(self) -> ProviderStatus:
        if not self.is_configured():
            return "unavailable"

        try:
            # Cheapest live call the API offers
            await self.client.search_products("test", page_size=1)
            return "available"
        except Exception as e:
            logger.warning(f"[BolcomProvider] Health check failed: {e}")
            return "error"

    async def get_info(self) -> ProviderInfo:
        return ProviderInfo(
            id=self.id,
            name=self.name,
            type=self.type,
            status=await self.get_status(),
            supports_ean_lookup=True,
            supported_countries=["NL", "BE"],
        )

    async def search(self, options: SearchOptions) -> SearchResult:
        payload = await self.client.search_products(
            options.query,
            page=options.page,
            page_size=options.page_size,
            sort=_SORT_MAP[options.sort],
        )

        products = [p for p in (self._to_product(raw) for raw in payload.get("products") or []) if p]
        total = int(payload.get("totalResultSize") or 0)
        page = int(payload.get("page") or options.page)
        page_size = int(payload.get("pageSize") or options.page_size)

        return SearchResult(
            products=products,
            total_results=total,
            page=page,
            page_size=page_size,
            has_more=page * page_size < total,
            provider=self.id,
        )

    async def get_by_ean(self, ean: str) -> Optional[SearchProduct]:
        product = await self.client.get_product_by_ean(ean)
        if not product:
            return None
        return self._to_product(product)

    def generate_affiliate_link(self, url: str, sub_id: Optional[str] = None) -> str:
        return self.client.generate_affiliate_link(url, sub_id)

    def matches_url(self, url: str) -> bool:
        return is_bolcom_url(url)

    def _to_product(self, raw: Dict[str, Any]) -> Optional[SearchProduct]:
        offer = raw.get("offer") or {}
        image = raw.get("image") or {}
        rating = raw.get("rating")
        url = raw.get("url") or ""

        product_id = raw.get("ean") or raw.get("bolProductId") or url
        if not product_id:
            logger.warning(f"[BolcomProvider] Skipping product without ean, id or url: {raw.get('title')!r}")
            return None

        return SearchProduct(
            id=str(product_id),
            provider_id=self.id,
            title=raw.get("title") or "",
            description=raw.get("specsTag") or raw.get("description"),
            price=offer.get("price"),
            currency=offer.get("currency") or "EUR",
            original_price=offer.get("strikethroughPrice"),
            url=url,
            image_url=image.get("url"),
            ean=raw.get("ean"),
            rating=ProductRating(**rating) if rating else None,
            affiliate_url=self.generate_affiliate_link(url),
        )
