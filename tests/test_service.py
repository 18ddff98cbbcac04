import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from fakes import FakeProvider, make_product
from models import ProductProvider
from product_search.models import SearchOptions
from product_search.registry import ProviderRegistry
from product_search.service import FeedProviderLoader, LoadState, ProductSearchService


@pytest.mark.asyncio
async def test_loader_loads_once_under_concurrency():
    registry = ProviderRegistry()
    calls = 0

    async def fake_load(session, session_factory):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return [FakeProvider("feed_a", type="feed")]

    loader = FeedProviderLoader(registry, session_factory=lambda: _NullSession())
    with patch("product_search.service.load_feed_providers", side_effect=fake_load):
        await asyncio.gather(*(loader.ensure_loaded() for _ in range(5)))

    assert calls == 1
    assert loader.state == LoadState.LOADED
    assert [p.id for p in registry.get_all()] == ["feed_a"]


@pytest.mark.asyncio
async def test_loader_failure_is_retried_on_next_call():
    registry = ProviderRegistry()
    loader = FeedProviderLoader(registry, session_factory=lambda: _NullSession())
    mock_load = AsyncMock(side_effect=[RuntimeError("db down"), [FakeProvider("feed_a", type="feed")]])

    with patch("product_search.service.load_feed_providers", mock_load):
        await loader.ensure_loaded()
        assert loader.state == LoadState.NOT_LOADED

        await loader.ensure_loaded()
        assert loader.state == LoadState.LOADED

    assert mock_load.await_count == 2


@pytest.mark.asyncio
async def test_reload_replaces_feed_providers():
    registry = ProviderRegistry()
    registry.register(FakeProvider("bolcom"))
    loader = FeedProviderLoader(registry, session_factory=lambda: _NullSession())
    mock_load = AsyncMock(side_effect=[
        [FakeProvider("feed_old", type="feed")],
        [FakeProvider("feed_new", type="feed")],
    ])

    with patch("product_search.service.load_feed_providers", mock_load):
        await loader.ensure_loaded()
        await loader.reload()

    assert [p.id for p in registry.get_all()] == ["bolcom", "feed_new"]


@pytest.mark.asyncio
async def test_service_loads_feed_providers_from_database(session, session_factory, feed_products):
    service = ProductSearchService(builtin_providers=[], session_factory=session_factory)

    result = await service.search_products(SearchOptions(query="sony"))

    assert result.total_results == 2
    assert {s.id for s in result.providers} == {"awin_coolblue", "scraper"}
    assert await service.is_search_available() is True

    providers = await service.get_providers()
    assert [p.id for p in providers] == ["scraper", "awin_coolblue"]

    product = await service.lookup_by_ean("4548736132610")
    assert product.id == "cb-1"

    assert service.find_provider_for_url("https://www.coolblue.nl/product/1").id == "awin_coolblue"
    assert service.find_provider_for_url("https://example.com/x").id == "scraper"


@pytest.mark.asyncio
async def test_service_search_unavailable_with_only_scraper(session_factory):
    service = ProductSearchService(builtin_providers=[], session_factory=session_factory)
    assert await service.is_search_available() is False


@pytest.mark.asyncio
async def test_service_picks_up_new_feed_after_reload(session, session_factory):
    service = ProductSearchService(builtin_providers=[FakeProvider("a", products=[make_product("a", 0)])],
                                   session_factory=session_factory)
    await service.get_providers()
    assert service.registry.get("awin_new") is None

    session.add(ProductProvider(provider_id="awin_new", name="New", product_count=0))
    await session.commit()
    await service.reload_feed_providers()

    assert service.registry.get("awin_new") is not None


class _NullSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False
