"""Ranked, typo-tolerant search over every indexed feed catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from elasticsearch import ApiError, TransportError

from exceptions import SearchIndexError
from product_search.models import (
    MAX_PAGE_SIZE,
    ProviderInfo,
    ProviderStatus,
    SearchOptions,
    SearchProduct,
    SearchResult,
)
from product_search.providers.base import ProductSearchProvider
from product_search.search_index.client import get_client, get_index_name, is_search_index_enabled
from product_search.search_index.query_expansion import expand_query

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ["title^3", "brand^2", "description^1"]
_AVAILABILITY_VALUES = {"in_stock", "out_of_stock", "unknown"}


def build_sort(sort: str) -> List[Dict[str, Any]]:
    if sort == "price_asc":
        return [{"price": {"order": "asc", "missing": "_last"}}, {"_score": {"order": "desc"}}]
    if sort == "price_desc":
        return [{"price": {"order": "desc", "missing": "_last"}}, {"_score": {"order": "desc"}}]
    # relevance and rating: text score, then preferred merchants
    return [{"_score": {"order": "desc"}}, {"providerPriority": {"order": "desc"}}]


def build_query(options: SearchOptions) -> Dict[str, Any]:
    filters: List[Dict[str, Any]] = []
    price_range: Dict[str, float] = {}
    if options.price_min is not None:
        price_range["gte"] = options.price_min
    if options.price_max is not None:
        price_range["lte"] = options.price_max
    if price_range:
        filters.append({"range": {"price": price_range}})
    if options.category:
        filters.append({"term": {"category": options.category}})

    return {
        "bool": {
            "must": [
                {
                    "multi_match": {
                        "query": expand_query(options.query),
                        "fields": SEARCH_FIELDS,
                        "fuzziness": "AUTO",
                        "operator": "or",
                    }
                }
            ],
            "filter": filters,
        }
    }


class SearchIndexProvider(ProductSearchProvider):
    """
    Results are reported under this provider's id; the feed that supplied
    each document is kept in `provider_metadata["original_provider_id"]`.
    """

    id = "search_index"
    name = "Search Index"
    type = "index"

    def is_configured(self) -> bool:
        return is_search_index_enabled()

    async def get_status(self) -> ProviderStatus:
        if not self.is_configured():
            return "unavailable"
        try:
            alive = await asyncio.to_thread(get_client().ping)
        except Exception as e:
            logger.warning(f"[SearchIndexProvider] Health check failed: {e}")
            return "error"
        return "available" if alive else "error"

    async def get_info(self) -> ProviderInfo:
        status = await self.get_status()
        product_count: Optional[int] = None
        if status == "available":
            try:
                result = await asyncio.to_thread(get_client().count, index=get_index_name())
                product_count = result["count"]
            except Exception as e:
                logger.debug(f"[SearchIndexProvider] Count unavailable: {e}")

        return ProviderInfo(
            id=self.id,
            name=self.name,
            type=self.type,
            status=status,
            product_count=product_count,
            supports_ean_lookup=True,
        )

    async def search(self, options: SearchOptions) -> SearchResult:
        if not self.is_configured():
            return self._empty_result(options)

        page_size = min(options.page_size, MAX_PAGE_SIZE)
        response = await self._search(
            query=build_query(options),
            sort=build_sort(options.sort),
            from_=(options.page - 1) * page_size,
            size=page_size,
            track_total_hits=True,
        )

        hits = response.get("hits", {})
        total = hits.get("total", {}).get("value", 0)
        products = [self._to_product(hit) for hit in hits.get("hits", [])]

        return SearchResult(
            products=products,
            total_results=total,
            page=options.page,
            page_size=page_size,
            has_more=options.page * page_size < total,
            provider=self.id,
        )

    async def get_by_ean(self, ean: str) -> Optional[SearchProduct]:
        if not self.is_configured():
            return None

        response = await self._search(query={"bool": {"filter": [{"term": {"ean": ean}}]}}, size=1)
        hits = response.get("hits", {}).get("hits", [])
        return self._to_product(hits[0]) if hits else None

    async def _search(self, **kwargs) -> Dict[str, Any]:
        try:
            response = await asyncio.to_thread(get_client().search, index=get_index_name(), **kwargs)
        except (ApiError, TransportError) as e:
            raise SearchIndexError(f"Search index request failed: {e}") from e
        return getattr(response, "body", response)

    def generate_affiliate_link(self, url: str, sub_id: Optional[str] = None) -> str:
        # Documents already carry the feed's affiliate URL
        return url

    def matches_url(self, url: str) -> bool:
        return False

    def _to_product(self, hit: Dict[str, Any]) -> SearchProduct:
        doc = hit.get("_source", {})
        availability = (doc.get("availability") or "unknown").lower()
        if availability not in _AVAILABILITY_VALUES:
            availability = "unknown"

        return SearchProduct(
            id=str(doc.get("id") or hit.get("_id")),
            provider_id=self.id,
            title=doc.get("title") or "",
            description=doc.get("description"),
            price=doc.get("price"),
            currency=doc.get("currency") or "EUR",
            url=doc.get("url") or "",
            image_url=doc.get("imageUrl"),
            ean=doc.get("ean"),
            brand=doc.get("brand"),
            category=doc.get("category"),
            availability=availability,
            affiliate_url=doc.get("affiliateUrl"),
            provider_metadata={
                "provider_name": doc.get("providerName"),
                "provider_priority": doc.get("providerPriority"),
                "original_provider_id": doc.get("providerId"),
            },
        )
