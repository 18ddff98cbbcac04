"""Multi-provider product search: providers, registry, feeds and the service facade."""

from .models import (
    AggregatedSearchResult,
    ProductRating,
    ProviderInfo,
    ProviderSearchSummary,
    SearchOptions,
    SearchProduct,
    SearchResult,
    WishlistItemInput,
    to_wishlist_item,
)
from .registry import ProviderRegistry, interleave_results
from .service import FeedProviderLoader, ProductSearchService, get_search_service

__all__ = [
    "AggregatedSearchResult",
    "ProductRating",
    "ProviderInfo",
    "ProviderSearchSummary",
    "SearchOptions",
    "SearchProduct",
    "SearchResult",
    "WishlistItemInput",
    "to_wishlist_item",
    "ProviderRegistry",
    "interleave_results",
    "FeedProviderLoader",
    "ProductSearchService",
    "get_search_service",
]
