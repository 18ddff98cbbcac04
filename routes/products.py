"""
Product search endpoints.

GET  /products/search            aggregated (or single-provider) search
GET  /products/search/available  whether any real search provider is live
GET  /products/providers         provider descriptors with live status
GET  /products/ean/{ean}         first provider hit for a barcode
POST /products/scrape            product details for a pasted URL
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from exceptions import ResourceNotFoundError
from product_search.clients.bolcom import extract_ean_from_url, is_bolcom_url
from product_search.models import (
    MAX_PAGE_SIZE,
    AggregatedSearchResult,
    ProviderInfo,
    SearchOptions,
    SearchProduct,
    SortOrder,
    to_wishlist_item,
)
from product_search.service import ProductSearchService, get_search_service
from product_search.url_scraper import detect_retailer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["products"])


class ScrapeRequest(BaseModel):
    url: str


class ScrapeResponse(BaseModel):
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def _is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@router.get("/search", response_model=AggregatedSearchResult)
async def search_products(
    q: Optional[str] = None,
    page: int = 1,
    page_size: int = Query(12, alias="pageSize"),
    sort: SortOrder = "relevance",
    price_min: Optional[float] = Query(None, alias="priceMin"),
    price_max: Optional[float] = Query(None, alias="priceMax"),
    category: Optional[str] = None,
    provider: Optional[str] = None,
    service: ProductSearchService = Depends(get_search_service),
):
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    try:
        options = SearchOptions(
            query=q,
            page=page,
            page_size=max(1, min(page_size, MAX_PAGE_SIZE)),
            sort=sort,
            price_min=price_min,
            price_max=price_max,
            category=category,
        )
    except PydanticValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0].get("msg", "Invalid search options"))

    logger.info(f"[ProductsAPI] Search q={options.query!r} provider={provider or 'all'} page={options.page}")

    if provider:
        return await service.search_provider(provider, options)
    return await service.search_products(options)


@router.get("/search/available")
async def search_available(service: ProductSearchService = Depends(get_search_service)):
    return {"available": await service.is_search_available()}


@router.get("/providers", response_model=List[ProviderInfo])
async def list_providers(service: ProductSearchService = Depends(get_search_service)):
    return await service.get_providers()


@router.get("/ean/{ean}", response_model=SearchProduct)
async def lookup_ean(ean: str, service: ProductSearchService = Depends(get_search_service)):
    product = await service.lookup_by_ean(ean)
    if not product:
        raise ResourceNotFoundError("Product not found", detail={"ean": ean})
    return product


@router.post("/scrape", response_model=ScrapeResponse)
async def scrape_product(
    body: ScrapeRequest,
    service: ProductSearchService = Depends(get_search_service),
):
    url = body.url.strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")
    if not _is_valid_url(url):
        raise HTTPException(status_code=400, detail="Invalid URL format")

    # Bol.com product pages carry the EAN; the API gives better data than the page
    bolcom = service.registry.get("bolcom")
    if bolcom and bolcom.is_configured() and is_bolcom_url(url):
        ean = extract_ean_from_url(url)
        if ean:
            try:
                product = await bolcom.get_by_ean(ean)
            except Exception as e:
                logger.warning(f"[ProductsAPI] Bol.com lookup for {ean} failed, falling back to scrape: {e}")
                product = None
            if product:
                data = to_wishlist_item(product).model_dump()
                data.update(source="bolcom", retailer="bolcom", ean=product.ean)
                return ScrapeResponse(success=True, data=data)

    product = await service.scrape_product_url(url)
    if not product:
        return ScrapeResponse(success=False, error="Could not extract product information from this URL")

    data = to_wishlist_item(product).model_dump()
    data.update(source="scrape", retailer=detect_retailer(url))
    return ScrapeResponse(success=True, data=data)
