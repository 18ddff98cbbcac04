"""Typed models shared by every product search provider."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

Availability = Literal["in_stock", "out_of_stock", "unknown"]
SortOrder = Literal["relevance", "price_asc", "price_desc", "rating"]
ProviderStatus = Literal["available", "unavailable", "error", "disabled"]
ProviderType = Literal["realtime", "feed", "scraper", "index"]

MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 12
DEFAULT_CURRENCY = "EUR"


class ProductRating(BaseModel):
    average: float = Field(..., ge=0)
    count: int = Field(0, ge=0)


class SearchProduct(BaseModel):
    """Provider-neutral product record. (id, provider_id) is the identity."""

    id: str
    provider_id: str

    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    url: str
    image_url: Optional[str] = None

    ean: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    rating: Optional[ProductRating] = None
    original_price: Optional[float] = None
    availability: Availability = "unknown"

    affiliate_url: Optional[str] = None
    provider_metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _currency_required_with_price(self) -> "SearchProduct":
        if self.price is not None and not self.currency:
            raise ValueError("currency is required when price is set")
        return self


class SearchOptions(BaseModel):
    """A search request. Only the query is required."""

    query: str
    page: int = Field(1, ge=1)
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort: SortOrder = "relevance"
    price_min: Optional[float] = Field(None, ge=0)
    price_max: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be empty")
        return value

    @model_validator(mode="after")
    def _price_bounds_ordered(self) -> "SearchOptions":
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            raise ValueError("price_min must not exceed price_max")
        return self


class SearchResult(BaseModel):
    products: List[SearchProduct] = Field(default_factory=list)
    total_results: int = 0
    page: int = 1
    page_size: int = 0
    has_more: bool = False
    provider: str


class ProviderSearchSummary(BaseModel):
    id: str
    name: str
    result_count: int = 0
    error: Optional[str] = None


class AggregatedSearchResult(BaseModel):
    products: List[SearchProduct] = Field(default_factory=list)
    total_results: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    providers: List[ProviderSearchSummary] = Field(default_factory=list)


class ProviderInfo(BaseModel):
    id: str
    name: str
    type: ProviderType
    status: ProviderStatus
    last_updated: Optional[datetime] = None
    product_count: Optional[int] = None
    supports_ean_lookup: bool = False
    supported_countries: Optional[List[str]] = None


class WishlistItemInput(BaseModel):
    """The subset of a product that gets persisted on a wishlist."""

    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    url: str
    image_url: Optional[str] = None


def to_wishlist_item(product: SearchProduct) -> WishlistItemInput:
    return WishlistItemInput(
        title=product.title,
        description=product.description,
        price=product.price,
        currency=product.currency,
        url=product.affiliate_url or product.url,
        image_url=product.image_url,
    )
