import pytest
import sys
import os
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# Add parent directory to path to allow importing models and main
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import models  # noqa: E402,F401  (registers tables)
from models import FeedProduct, ProductProvider  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_provider_env(monkeypatch):
    """Start every test with no upstream credentials configured."""
    for name in (
        "BOLCOM_CLIENT_ID",
        "BOLCOM_CLIENT_SECRET",
        "BOLCOM_SITE_ID",
        "AWIN_PUBLISHER_ID",
        "SEARCH_INDEX_ENABLED",
        "SEARCH_INDEX_HOST",
        "SEARCH_INDEX_API_KEY",
        "PRODUCT_SEARCH_PROVIDER_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest_asyncio.fixture(name="session_factory", scope="function")
async def session_factory_fixture():
    # One shared in-memory SQLite connection per test
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    factory = sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await test_engine.dispose()


@pytest_asyncio.fixture(name="session")
async def session_fixture(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(name="feed_provider_row")
async def feed_provider_row_fixture(session: AsyncSession):
    row = ProductProvider(
        provider_id="awin_coolblue",
        name="Coolblue",
        type="FEED",
        enabled=True,
        priority=10,
        affiliate_code="ref=wishbubble",
        url_patterns="coolblue.nl,coolblue.be",
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


@pytest_asyncio.fixture(name="feed_products")
async def feed_products_fixture(session: AsyncSession, feed_provider_row: ProductProvider):
    items = [
        ("cb-1", "Sony WH-1000XM5 koptelefoon", 349.0, "4548736132610", "Sony"),
        ("cb-2", "Sony WF-1000XM4 oordopjes", 199.0, "4548736130906", "Sony"),
        ("cb-3", "Apple AirPods Pro", 279.0, "0194253397168", "Apple"),
        ("cb-4", "JBL Flip 6 speaker", 129.0, None, "JBL"),
    ]
    for external_id, title, price, ean, brand in items:
        session.add(FeedProduct(
            provider_id=feed_provider_row.id,
            external_id=external_id,
            title=title,
            brand=brand,
            price=price,
            currency="EUR",
            url=f"https://www.coolblue.nl/product/{external_id}",
            ean=ean,
            availability="in_stock",
            search_text=f"{title} {brand}".lower(),
        ))
    feed_provider_row.product_count = len(items)
    session.add(feed_provider_row)
    await session.commit()
    return items
