"""
Feed ingestion: parse a merchant CSV and upsert it into feed_product.

Each import is recorded in feed_import_log. Rows are written in batches so
one bad batch costs only its own rows; the provider's counters are refreshed
at the end and, when the search index is enabled, its rows are re-indexed.
"""

from __future__ import annotations

import gzip
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import httpx
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from affiliate import AffiliateConfig, load_affiliate_configs, resolve_affiliate_url
from database import async_session_maker
from exceptions import ExternalServiceError, FeedImportError, ValidationError
from models import FeedImportLog, FeedProduct, ProductProvider
from observability.metrics import feed_import_rows_total
from product_search.feeds.csv_parser import (
    FeedParseResult,
    FeedProductRow,
    build_search_text,
    map_availability,
    parse_feed_csv,
)
from product_search.search_index.client import is_search_index_enabled
from product_search.search_index.sync import sync_provider_products

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

BATCH_SIZE = 100
MAX_REPORTED_ERRORS = 10
DOWNLOAD_TIMEOUT_SECONDS = 120.0
_GZIP_MAGIC = b"\x1f\x8b"


@dataclass
class FeedImportResult:
    import_log_id: int
    imported: int
    failed: int
    total: int
    product_count: int
    parse_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": True,
            "import_log_id": self.import_log_id,
            "imported": self.imported,
            "failed": self.failed,
            "total": self.total,
            "product_count": self.product_count,
            "parse_errors": self.parse_errors,
        }


@dataclass
class FeedSyncOutcome:
    provider_id: str
    name: str
    status: str
    imported: int = 0
    failed: int = 0
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "name": self.name,
            "status": self.status,
            "imported": self.imported,
            "failed": self.failed,
            "reason": self.reason,
        }


def _apply_row(product: FeedProduct, row: FeedProductRow, affiliate_configs: Sequence[AffiliateConfig] = ()) -> None:
    product.ean = row.ean or None
    product.title = row.title
    product.description = row.description or None
    product.brand = row.brand or None
    product.category = row.category or None
    product.price = row.price
    product.currency = row.currency or "EUR"
    product.original_price = row.original_price
    product.url = row.url
    product.affiliate_url = row.affiliate_url or resolve_affiliate_url(row.url, affiliate_configs)
    product.image_url = row.image_url or None
    product.availability = map_availability(row.availability)
    product.search_text = build_search_text(row.title, row.description, row.brand, row.category)
    product.raw_data = dict(row.raw)


async def _upsert_batch(
    session: AsyncSession,
    provider_db_id: int,
    rows: Sequence[FeedProductRow],
    affiliate_configs: Sequence[AffiliateConfig] = (),
) -> None:
    external_ids = [row.id for row in rows]
    existing = {
        p.external_id: p
        for p in (
            await session.exec(
                select(FeedProduct).where(
                    FeedProduct.provider_id == provider_db_id,
                    FeedProduct.external_id.in_(external_ids),
                )
            )
        ).all()
    }

    now = datetime.utcnow()
    for row in rows:
        product = existing.get(row.id)
        if product is None:
            product = FeedProduct(provider_id=provider_db_id, external_id=row.id, title=row.title, url=row.url)
            existing[row.id] = product
        else:
            product.updated_at = now
        _apply_row(product, row, affiliate_configs)
        session.add(product)

    await session.commit()


class FeedImporter:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory or async_session_maker

    async def _affiliate_configs_for(self, provider: ProductProvider) -> List[AffiliateConfig]:
        # Awin merchants get their deep link at read time instead
        if provider.affiliate_merchant_id:
            return []
        async with self.session_factory() as session:
            return await load_affiliate_configs(session)

    async def _finish_log(self, log_id: int, **values) -> None:
        async with self.session_factory() as session:
            log = await session.get(FeedImportLog, log_id)
            if log is None:
                return
            for key, value in values.items():
                setattr(log, key, value)
            log.completed_at = datetime.utcnow()
            session.add(log)
            await session.commit()

    async def import_csv(
        self,
        provider: ProductProvider,
        csv_text: str,
        file_name: Optional[str] = None,
        imported_by: Optional[str] = None,
    ) -> FeedImportResult:
        if provider.type != "FEED":
            raise ValidationError(
                "Provider is not a feed type. Only FEED providers support CSV import.",
                detail={"provider_id": provider.provider_id},
            )

        async with self.session_factory() as session:
            log = FeedImportLog(
                provider_id=provider.id,
                file_name=file_name,
                file_size=len(csv_text.encode("utf-8")),
                status="PROCESSING",
                imported_by=imported_by,
            )
            session.add(log)
            await session.commit()
            await session.refresh(log)
            log_id = log.id

        logger.info(
            f"[FeedImporter] Starting import for {provider.provider_id} "
            f"(file={file_name}, log={log_id})"
        )

        try:
            parsed: FeedParseResult = parse_feed_csv(csv_text)
        except FeedImportError as e:
            await self._finish_log(log_id, status="FAILED", error_message=e.message)
            logger.error(f"[FeedImporter] CSV parsing failed for {provider.provider_id}: {e}")
            raise

        parse_errors = [str(err) for err in parsed.errors]

        if not parsed.products:
            await self._finish_log(
                log_id,
                status="FAILED",
                error_message="No valid products found in CSV",
                records_total=parsed.total_rows,
                records_failed=parsed.total_rows,
            )
            raise FeedImportError(
                "No valid products found in CSV",
                detail={"parse_errors": parse_errors[:MAX_REPORTED_ERRORS]},
            )

        affiliate_configs = await self._affiliate_configs_for(provider)

        imported = failed = 0
        for start in range(0, len(parsed.products), BATCH_SIZE):
            batch = parsed.products[start:start + BATCH_SIZE]
            try:
                async with self.session_factory() as session:
                    await _upsert_batch(session, provider.id, batch, affiliate_configs)
                imported += len(batch)
            except Exception as e:
                logger.error(
                    f"[FeedImporter] Batch at row offset {start} ({len(batch)} rows) failed "
                    f"for {provider.provider_id}: {e}"
                )
                failed += len(batch)

        feed_import_rows_total.labels(provider=provider.provider_id, outcome="imported").inc(imported)
        feed_import_rows_total.labels(provider=provider.provider_id, outcome="failed").inc(
            failed + len(parsed.errors)
        )

        await self._finish_log(
            log_id,
            status="FAILED" if failed == len(parsed.products) else "COMPLETED",
            records_total=parsed.total_rows,
            records_imported=imported,
            records_failed=failed + len(parsed.errors),
            error_message=f"{len(parsed.errors)} rows had parsing errors" if parsed.errors else None,
        )

        async with self.session_factory() as session:
            product_count = (
                await session.exec(
                    select(func.count()).select_from(FeedProduct).where(FeedProduct.provider_id == provider.id)
                )
            ).one()
            row = await session.get(ProductProvider, provider.id)
            if row is not None:
                row.product_count = product_count
                row.last_synced = datetime.utcnow()
                row.sync_status = "SUCCESS"
                row.sync_error = None
                row.updated_at = datetime.utcnow()
                session.add(row)
                await session.commit()

            if is_search_index_enabled():
                try:
                    await sync_provider_products(session, provider.id)
                except Exception as e:
                    logger.error(f"[FeedImporter] Search index sync failed for {provider.provider_id}: {e}")

        logger.info(
            f"[FeedImporter] Import for {provider.provider_id} done: {imported} imported, "
            f"{failed} failed, {len(parsed.errors)} parse errors, {product_count} total"
        )

        return FeedImportResult(
            import_log_id=log_id,
            imported=imported,
            failed=failed,
            total=len(parsed.products),
            product_count=product_count,
            parse_errors=parse_errors[:MAX_REPORTED_ERRORS],
        )

    async def sync_feed_provider(self, provider: ProductProvider, imported_by: Optional[str] = None) -> FeedImportResult:
        """Download the provider's feed_url and import it, tracking sync_status on the provider."""
        if provider.type != "FEED":
            raise ValidationError("Provider is not a feed type. Only FEED providers support sync.")
        if not provider.feed_url:
            raise ValidationError("Provider has no feed URL configured. Please add a feed URL first.")

        await self._set_sync_status(provider.id, "SYNCING")
        try:
            csv_text = await download_feed(provider.feed_url)
            result = await self.import_csv(provider, csv_text, file_name=provider.feed_url, imported_by=imported_by)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            await self._set_sync_status(provider.id, "FAILED", message)
            logger.error(f"[FeedImporter] Sync failed for {provider.provider_id}: {message}")
            raise

        return result

    async def sync_all_feed_providers(self, imported_by: Optional[str] = "scheduled-sync") -> List[FeedSyncOutcome]:
        """
        Sync every enabled FEED provider that has a feed_url.

        Providers are synced one at a time; a failure is recorded in that
        provider's outcome and the remaining providers still run.
        """
        async with self.session_factory() as session:
            stmt = (
                select(ProductProvider)
                .where(ProductProvider.type == "FEED")
                .where(ProductProvider.enabled == True)  # noqa: E712
                .where(ProductProvider.feed_url != None)  # noqa: E711
                .order_by(ProductProvider.priority.desc(), ProductProvider.id)
            )
            providers = (await session.exec(stmt)).all()

        outcomes: List[FeedSyncOutcome] = []
        for provider in providers:
            try:
                result = await self.sync_feed_provider(provider, imported_by=imported_by)
            except Exception as e:
                outcomes.append(FeedSyncOutcome(
                    provider_id=provider.provider_id,
                    name=provider.name,
                    status="failed",
                    reason=getattr(e, "message", None) or str(e),
                ))
                continue

            outcomes.append(FeedSyncOutcome(
                provider_id=provider.provider_id,
                name=provider.name,
                status="synced",
                imported=result.imported,
                failed=result.failed,
            ))

        synced = sum(1 for o in outcomes if o.status == "synced")
        logger.info(
            f"[FeedImporter] Scheduled sync done: {synced}/{len(outcomes)} providers synced, "
            f"{len(outcomes) - synced} failed"
        )
        return outcomes

    async def _set_sync_status(self, provider_db_id: int, status: str, error: Optional[str] = None) -> None:
        async with self.session_factory() as session:
            row = await session.get(ProductProvider, provider_db_id)
            if row is None:
                return
            row.sync_status = status
            row.sync_error = error
            row.updated_at = datetime.utcnow()
            session.add(row)
            await session.commit()


def _decode_feed(content: bytes, url: str) -> str:
    if content[:2] == _GZIP_MAGIC or url.lower().split("?")[0].endswith(".gz"):
        content = gzip.decompress(content)
    return content.decode("utf-8-sig", errors="replace")


async def download_feed(url: str) -> str:
    """Fetch a feed as text, gunzipping it when the payload is compressed."""
    try:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
            resp = await client.get(url, headers={"User-Agent": "ProductSearch/1.0 Feed Sync"})
    except httpx.HTTPError as e:
        raise ExternalServiceError(f"Failed to download feed: {e}", service_name="feed") from e

    if resp.status_code != 200:
        raise ExternalServiceError(
            f"Failed to download feed: HTTP {resp.status_code}",
            service_name="feed",
            detail={"url": url, "status": resp.status_code},
        )

    try:
        text = _decode_feed(resp.content, url)
    except (OSError, EOFError) as e:
        raise FeedImportError(f"Feed is not valid gzip: {e}") from e

    logger.info(f"[FeedImporter] Downloaded feed {url} ({len(resp.content)} bytes)")
    return text
