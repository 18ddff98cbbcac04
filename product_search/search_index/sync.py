"""Keep the search index in step with the feed_product table."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from elasticsearch import helpers
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from models import FeedProduct, ProductProvider
from product_search.search_index.client import get_client, get_index_name, is_search_index_enabled
from product_search.search_index.schema import ensure_products_index

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000
# Skip the id scan when index and table disagree by less than this
ORPHAN_SCAN_THRESHOLD = 100

RowWithProvider = Tuple[FeedProduct, ProductProvider]


def to_index_document(row: FeedProduct, provider: ProductProvider) -> Dict[str, Any]:
    doc = {
        "id": str(row.id),
        "title": row.title,
        "brand": row.brand,
        "description": row.description,
        "category": row.category,
        "price": row.price,
        "availability": row.availability,
        "providerPriority": provider.priority,
        "providerId": provider.provider_id,
        "providerName": provider.name,
        "imageUrl": row.image_url,
        "url": row.url,
        "affiliateUrl": row.affiliate_url or row.url,
        "currency": row.currency,
        "ean": row.ean,
    }
    return {k: v for k, v in doc.items() if v is not None}


def _iter_actions(index: str, rows: Iterable[RowWithProvider]) -> Iterable[Dict[str, Any]]:
    for row, provider in rows:
        doc = to_index_document(row, provider)
        yield {
            "_op_type": "index",
            "_index": index,
            "_id": doc["id"],
            "_source": doc,
        }


async def sync_products_to_index(rows: Sequence[RowWithProvider]) -> Dict[str, int]:
    """Upsert a batch of rows. Returns success/failed counts."""
    if not is_search_index_enabled():
        logger.debug("Search index disabled, skipping sync")
        return {"success": 0, "failed": 0}
    if not rows:
        return {"success": 0, "failed": 0}

    es = get_client()
    await ensure_products_index(es)

    actions = list(_iter_actions(get_index_name(), rows))
    success, errors = await asyncio.to_thread(helpers.bulk, es, actions, raise_on_error=False)
    if errors:
        logger.error(f"[SearchIndexSync] Failed to index {len(errors)} products: {errors[:5]}")

    return {"success": success, "failed": len(errors)}


async def delete_products_from_index(product_ids: Sequence[str]) -> Dict[str, int]:
    if not is_search_index_enabled() or not product_ids:
        return {"deleted": 0}

    es = get_client()
    index = get_index_name()
    deleted = 0

    for start in range(0, len(product_ids), BATCH_SIZE):
        batch = list(product_ids[start:start + BATCH_SIZE])
        try:
            result = await asyncio.to_thread(
                es.delete_by_query,
                index=index,
                query={"ids": {"values": batch}},
            )
            deleted += result.get("deleted", 0)
        except Exception as e:
            logger.error(f"[SearchIndexSync] Failed to delete batch of {len(batch)} products: {e}")

    return {"deleted": deleted}


async def _iter_row_batches(
    session: AsyncSession, provider_db_id: Optional[int] = None
):
    last_id = 0
    while True:
        stmt = (
            select(FeedProduct, ProductProvider)
            .join(ProductProvider, FeedProduct.provider_id == ProductProvider.id)
            .where(FeedProduct.id > last_id)
            .order_by(FeedProduct.id)
            .limit(BATCH_SIZE)
        )
        if provider_db_id is not None:
            stmt = stmt.where(FeedProduct.provider_id == provider_db_id)

        batch: List[RowWithProvider] = list((await session.exec(stmt)).all())
        if not batch:
            return
        yield batch
        last_id = batch[-1][0].id


async def sync_provider_products(session: AsyncSession, provider_db_id: int) -> Dict[str, int]:
    """Push every row of one provider. Called after a feed import."""
    if not is_search_index_enabled():
        return {"success": 0, "failed": 0}

    success = failed = 0
    async for batch in _iter_row_batches(session, provider_db_id):
        result = await sync_products_to_index(batch)
        success += result["success"]
        failed += result["failed"]

    logger.info(f"[SearchIndexSync] Provider {provider_db_id} synced: {success} ok, {failed} failed")
    return {"success": success, "failed": failed}


async def _indexed_ids() -> Set[str]:
    es = get_client()

    def _scan() -> Set[str]:
        hits = helpers.scan(es, index=get_index_name(), query={"query": {"match_all": {}}}, _source=False)
        return {hit["_id"] for hit in hits}

    return await asyncio.to_thread(_scan)


async def full_resync(session: AsyncSession) -> Dict[str, float]:
    """
    Re-index every catalog row and drop documents whose row no longer exists.

    The orphan scan only runs when the index and table counts differ
    noticeably.
    """
    if not is_search_index_enabled():
        logger.info("[SearchIndexSync] Search index disabled, skipping full resync")
        return {"synced": 0, "failed": 0, "deleted": 0, "duration": 0.0}

    started = time.monotonic()
    es = get_client()
    await ensure_products_index(es)

    total_rows = (await session.exec(select(func.count()).select_from(FeedProduct))).one()
    logger.info(f"[SearchIndexSync] Full resync of {total_rows} products")

    synced = failed = 0
    synced_ids: Set[str] = set()
    async for batch in _iter_row_batches(session):
        result = await sync_products_to_index(batch)
        synced += result["success"]
        failed += result["failed"]
        synced_ids.update(str(row.id) for row, _ in batch)

    deleted = 0
    try:
        count = await asyncio.to_thread(es.count, index=get_index_name())
        indexed_total = count["count"]
        if abs(indexed_total - len(synced_ids)) > ORPHAN_SCAN_THRESHOLD:
            orphans = [doc_id for doc_id in await _indexed_ids() if doc_id not in synced_ids]
            if orphans:
                logger.info(f"[SearchIndexSync] Deleting {len(orphans)} orphaned documents")
                deleted = (await delete_products_from_index(orphans))["deleted"]
    except Exception as e:
        logger.error(f"[SearchIndexSync] Orphan detection failed: {e}")

    duration = time.monotonic() - started
    logger.info(
        f"[SearchIndexSync] Full resync complete: {synced} synced, {failed} failed, "
        f"{deleted} deleted in {duration:.1f}s"
    )
    return {"synced": synced, "failed": failed, "deleted": deleted, "duration": duration}
