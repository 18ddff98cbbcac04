"""
Admin endpoints for merchant catalog feeds.

POST /admin/product-feeds/import              upload a CSV for a FEED provider
POST /admin/product-feeds/{provider_id}/sync  download the provider's feed_url and import it
POST /admin/product-feeds/sync-all            sync every enabled feed that has a feed_url
POST /admin/product-feeds/reindex             rebuild the search index from feed_product

`provider_id` is the provider slug (ProductProvider.provider_id).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from database import get_session
from exceptions import ConfigurationError, ResourceNotFoundError
from models import ProductProvider
from product_search.feeds.importer import FeedImporter
from product_search.search_index.client import is_search_index_enabled
from product_search.search_index.schema import recreate_products_index
from product_search.search_index.sync import full_resync
from product_search.service import ProductSearchService, get_search_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin/product-feeds", tags=["admin"])

_feed_importer: Optional[FeedImporter] = None


def get_feed_importer() -> FeedImporter:
    global _feed_importer
    if _feed_importer is None:
        _feed_importer = FeedImporter()
    return _feed_importer


async def _get_feed_provider(session: AsyncSession, provider_id: str) -> ProductProvider:
    provider = (
        await session.exec(select(ProductProvider).where(ProductProvider.provider_id == provider_id))
    ).first()
    if not provider:
        raise ResourceNotFoundError("Provider not found", detail={"provider_id": provider_id})
    return provider


@router.post("/import")
async def import_feed(
    file: UploadFile = File(...),
    provider_id: str = Form(...),
    session: AsyncSession = Depends(get_session),
    importer: FeedImporter = Depends(get_feed_importer),
    service: ProductSearchService = Depends(get_search_service),
):
    provider = await _get_feed_provider(session, provider_id)

    content = await file.read()
    csv_text = content.decode("utf-8-sig", errors="replace")
    logger.info(f"[ProductFeedsAPI] Import {file.filename} ({len(content)} bytes) for {provider_id}")

    result = await importer.import_csv(provider, csv_text, file_name=file.filename)
    await service.reload_feed_providers()
    return result.to_dict()


@router.post("/{provider_id}/sync")
async def sync_feed(
    provider_id: str,
    session: AsyncSession = Depends(get_session),
    importer: FeedImporter = Depends(get_feed_importer),
    service: ProductSearchService = Depends(get_search_service),
):
    provider = await _get_feed_provider(session, provider_id)

    logger.info(f"[ProductFeedsAPI] Sync {provider_id} from {provider.feed_url}")
    result = await importer.sync_feed_provider(provider)
    await service.reload_feed_providers()
    return result.to_dict()


@router.post("/sync-all")
async def sync_all_feeds(
    importer: FeedImporter = Depends(get_feed_importer),
    service: ProductSearchService = Depends(get_search_service),
):
    outcomes = await importer.sync_all_feed_providers()
    # Once for the whole run, after every provider has been written
    await service.reload_feed_providers()

    synced = sum(1 for o in outcomes if o.status == "synced")
    return {
        "success": True,
        "results": [o.to_dict() for o in outcomes],
        "summary": {"total": len(outcomes), "synced": synced, "failed": len(outcomes) - synced},
    }


@router.post("/reindex")
async def reindex_search(
    recreate: bool = False,
    session: AsyncSession = Depends(get_session),
):
    """Re-index every feed product; `recreate=true` drops the index first."""
    if not is_search_index_enabled():
        raise ConfigurationError("Search index is not enabled")

    if recreate:
        await recreate_products_index()
    result = await full_resync(session)
    return {"success": True, **result}
