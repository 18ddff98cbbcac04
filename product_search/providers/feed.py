"""Search over merchant catalog feeds imported into the database.

Each FEED row in product_provider (Coolblue, Dreamland, Fnac, ...) becomes one
FeedProvider instance that only sees its own feed_product rows.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Callable, List, Optional
from urllib.parse import urlencode

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from affiliate import AffiliateConfig, apply_affiliate_code
from database import async_session_maker
from models import FeedProduct, ProductProvider
from product_search.models import (
    ProviderInfo,
    ProviderStatus,
    SearchOptions,
    SearchProduct,
    SearchResult,
)
from product_search.providers.base import ProductSearchProvider

logger = logging.getLogger(__name__)

_AWIN_DEEP_LINK_URL = "https://www.awin1.com/cread.php"

# Known merchants; anything else falls back to the row's url_patterns
MERCHANT_URL_PATTERNS = {
    "awin_coolblue": re.compile(r"coolblue\.(nl|be|de)", re.IGNORECASE),
    "awin_dreamland": re.compile(r"dreamland\.be", re.IGNORECASE),
    "awin_fnac": re.compile(r"fnac\.(be|fr)", re.IGNORECASE),
    "awin_mediamarkt": re.compile(r"mediamarkt\.(nl|be|de)", re.IGNORECASE),
    "awin_wehkamp": re.compile(r"wehkamp\.nl", re.IGNORECASE),
    "awin_zalando": re.compile(r"zalando\.(nl|be)", re.IGNORECASE),
}

_AVAILABILITY_VALUES = {"in_stock", "out_of_stock", "unknown"}

SessionFactory = Callable[[], AsyncSession]


def build_url_pattern(provider_slug: str, url_patterns: Optional[str]) -> Optional[re.Pattern]:
    pattern = MERCHANT_URL_PATTERNS.get(provider_slug)
    if pattern or not url_patterns:
        return pattern

    parts = [re.escape(p.strip()) for p in url_patterns.split(",") if p.strip()]
    if not parts:
        return None
    return re.compile("|".join(parts), re.IGNORECASE)


class FeedProvider(ProductSearchProvider):
    type = "feed"

    def __init__(
        self,
        *,
        id: str,
        name: str,
        db_provider_id: int,
        affiliate_merchant_id: Optional[str] = None,
        url_pattern: Optional[re.Pattern] = None,
        affiliate_code: Optional[str] = None,
        affiliate_param: Optional[str] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.id = id
        self.name = name
        self.db_provider_id = db_provider_id
        self.affiliate_merchant_id = affiliate_merchant_id
        self.url_pattern = url_pattern
        self.affiliate_code = affiliate_code
        self.affiliate_param = affiliate_param
        self._session_factory = session_factory or async_session_maker

    def is_configured(self) -> bool:
        return True

    async def _load_provider_row(self) -> Optional[ProductProvider]:
        async with self._session_factory() as session:
            return await session.get(ProductProvider, self.db_provider_id)

    @staticmethod
    def _status_for(row: Optional[ProductProvider]) -> ProviderStatus:
        if not row:
            return "unavailable"
        if not row.enabled:
            return "disabled"
        if not row.product_count:
            return "unavailable"
        return "available"

    async def get_status(self) -> ProviderStatus:
        return self._status_for(await self._load_provider_row())

    async def get_info(self) -> ProviderInfo:
        row = await self._load_provider_row()
        return ProviderInfo(
            id=self.id,
            name=self.name,
            type=self.type,
            status=self._status_for(row),
            last_updated=row.last_synced if row else None,
            product_count=(row.product_count or 0) if row else 0,
            supports_ean_lookup=True,
        )

    def _filters(self, options: SearchOptions) -> list:
        clauses = [
            FeedProduct.provider_id == self.db_provider_id,
            func.lower(FeedProduct.search_text).contains(options.query.lower(), autoescape=True),
        ]
        if options.price_min is not None:
            clauses.append(FeedProduct.price >= options.price_min)
        if options.price_max is not None:
            clauses.append(FeedProduct.price <= options.price_max)
        return clauses

    @staticmethod
    def _order_by(sort: str):
        if sort == "price_asc":
            return FeedProduct.price.asc()
        if sort == "price_desc":
            return FeedProduct.price.desc()
        # Feeds carry no relevance score or ratings; title order is a placeholder
        return FeedProduct.title.asc()

    async def search(self, options: SearchOptions) -> SearchResult:
        filters = self._filters(options)
        offset = (options.page - 1) * options.page_size

        async with self._session_factory() as session:
            rows_stmt = (
                select(FeedProduct)
                .where(*filters)
                .order_by(self._order_by(options.sort), FeedProduct.id)
                .offset(offset)
                .limit(options.page_size)
            )
            count_stmt = select(func.count()).select_from(FeedProduct).where(*filters)

            rows = (await session.exec(rows_stmt)).all()
            total = (await session.exec(count_stmt)).one()

        return SearchResult(
            products=[self._to_product(row) for row in rows],
            total_results=total,
            page=options.page,
            page_size=options.page_size,
            has_more=options.page * options.page_size < total,
            provider=self.id,
        )

    async def get_by_ean(self, ean: str) -> Optional[SearchProduct]:
        async with self._session_factory() as session:
            stmt = (
                select(FeedProduct)
                .where(FeedProduct.provider_id == self.db_provider_id)
                .where(FeedProduct.ean == ean)
                .limit(1)
            )
            row = (await session.exec(stmt)).first()

        return self._to_product(row) if row else None

    def generate_affiliate_link(self, url: str, sub_id: Optional[str] = None) -> str:
        """Awin deep link when the merchant is known to Awin, else the provider's own code."""
        publisher_id = os.getenv("AWIN_PUBLISHER_ID")
        if self.affiliate_merchant_id and publisher_id:
            params = {
                "awinmid": self.affiliate_merchant_id,
                "awinaffid": publisher_id,
                "ued": url,
            }
            if sub_id:
                params["clickref"] = sub_id
            return f"{_AWIN_DEEP_LINK_URL}?{urlencode(params)}"

        if self.affiliate_code:
            return apply_affiliate_code(
                url,
                AffiliateConfig(affiliate_code=self.affiliate_code, affiliate_param=self.affiliate_param),
            )

        return url

    def matches_url(self, url: str) -> bool:
        if not self.url_pattern:
            return False
        return bool(self.url_pattern.search(url))

    def _to_product(self, row: FeedProduct) -> SearchProduct:
        availability = (row.availability or "unknown").lower()
        if availability not in _AVAILABILITY_VALUES:
            availability = "unknown"

        return SearchProduct(
            id=row.external_id,
            provider_id=self.id,
            title=row.title,
            description=row.description,
            price=row.price,
            currency=row.currency or "EUR",
            original_price=row.original_price,
            url=row.url,
            image_url=row.image_url,
            ean=row.ean,
            brand=row.brand,
            category=row.category,
            availability=availability,
            affiliate_url=row.affiliate_url or self.generate_affiliate_link(row.url),
        )


def feed_provider_from_row(row: ProductProvider, session_factory: Optional[SessionFactory] = None) -> FeedProvider:
    return FeedProvider(
        id=row.provider_id,
        name=row.name,
        db_provider_id=row.id,
        affiliate_merchant_id=row.affiliate_merchant_id,
        url_pattern=build_url_pattern(row.provider_id, row.url_patterns),
        affiliate_code=row.affiliate_code,
        affiliate_param=row.affiliate_param,
        session_factory=session_factory,
    )


async def create_feed_provider(
    session: AsyncSession,
    provider_slug: str,
    session_factory: Optional[SessionFactory] = None,
) -> Optional[FeedProvider]:
    """Build a provider for one FEED row, or None if the slug is unknown or not a feed."""
    stmt = select(ProductProvider).where(ProductProvider.provider_id == provider_slug)
    row = (await session.exec(stmt)).first()
    if not row or row.type != "FEED":
        return None
    return feed_provider_from_row(row, session_factory)


async def load_feed_providers(
    session: AsyncSession,
    session_factory: Optional[SessionFactory] = None,
) -> List[FeedProvider]:
    stmt = (
        select(ProductProvider)
        .where(ProductProvider.type == "FEED")
        .where(ProductProvider.enabled == True)  # noqa: E712
        .order_by(ProductProvider.priority.desc(), ProductProvider.id)
    )
    rows = (await session.exec(stmt)).all()
    providers: List[FeedProvider] = []
    for row in rows:
        try:
            providers.append(feed_provider_from_row(row, session_factory))
        except Exception as e:
            logger.error(f"[FeedProvider] Skipping feed provider {row.provider_id}: {e}")
    logger.info(f"[FeedProvider] Loaded {len(providers)} feed providers")
    return providers
