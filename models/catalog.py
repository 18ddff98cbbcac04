"""Catalog models: product providers, imported feed rows, import logs and scrape cache."""

from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlmodel import Column, Field, SQLModel


class ProductProvider(SQLModel, table=True):
    """
    Administrative record for one product source.

    FEED providers are backed by FeedProduct rows imported from a merchant
    catalog; API providers only carry affiliate configuration.
    """

    __tablename__ = "product_provider"

    id: Optional[int] = Field(default=None, primary_key=True)
    provider_id: str = Field(index=True, unique=True)  # slug, e.g. "awin_coolblue"
    name: str
    type: str = Field(default="FEED", index=True)  # FEED | API
    enabled: bool = Field(default=True, index=True)
    priority: int = 0  # higher wins affiliate matching and index tie-breaks

    # Affiliate configuration
    affiliate_code: Optional[str] = None
    affiliate_param: Optional[str] = None
    url_patterns: Optional[str] = None  # comma-separated hostname substrings
    affiliate_merchant_id: Optional[str] = None

    # Feed sync state
    feed_url: Optional[str] = None
    product_count: int = 0
    last_synced: Optional[datetime] = None
    sync_status: Optional[str] = None  # SYNCING | SUCCESS | FAILED
    sync_error: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class FeedProduct(SQLModel, table=True):
    """One catalog row produced by a feed import."""

    __tablename__ = "feed_product"
    __table_args__ = (
        sa.UniqueConstraint("provider_id", "external_id", name="uq_feed_product_provider_external"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="product_provider.id", index=True)
    external_id: str

    title: str
    description: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    currency: str = "EUR"
    original_price: Optional[float] = None
    url: str
    affiliate_url: Optional[str] = None
    image_url: Optional[str] = None
    ean: Optional[str] = Field(default=None, index=True)
    availability: str = "unknown"  # in_stock | out_of_stock | unknown

    # Lower-cased title/description/brand/category for containment search
    search_text: str = ""
    raw_data: Optional[Any] = Field(default=None, sa_column=Column(sa.JSON, nullable=True))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class FeedImportLog(SQLModel, table=True):
    """Audit trail for a single feed import run."""

    __tablename__ = "feed_import_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="product_provider.id", index=True)
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    status: str = "PROCESSING"  # PROCESSING | COMPLETED | FAILED
    records_total: int = 0
    records_imported: int = 0
    records_failed: int = 0
    error_message: Optional[str] = None
    imported_by: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


class ScrapedProduct(SQLModel, table=True):
    """Cached page metadata for scraped product URLs."""

    __tablename__ = "scraped_product"

    id: Optional[int] = Field(default=None, primary_key=True)
    url: str = Field(index=True, unique=True)
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    image_url: Optional[str] = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
