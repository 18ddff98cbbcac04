import asyncio

import pytest

from fakes import FakeProvider, make_product
from product_search.executors import run_provider_search
from product_search.models import SearchOptions
from product_search.registry import ProviderRegistry, interleave_results


def _registry(*providers):
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    return registry


def test_interleave_is_strict_round_robin():
    a = [make_product("a", i) for i in range(3)]
    b = [make_product("b", 0)]

    merged = interleave_results({"a": a, "b": b}, ["a", "b"])

    assert [p.id for p in merged] == ["a-0", "b-0", "a-1", "a-2"]


def test_interleave_skips_missing_providers():
    a = [make_product("a", 0)]
    assert [p.id for p in interleave_results({"a": a}, ["gone", "a"])] == ["a-0"]


@pytest.mark.asyncio
async def test_search_all_interleaves_and_sums_totals():
    a = FakeProvider("a", products=[make_product("a", i) for i in range(3)], total=30)
    b = FakeProvider("b", products=[make_product("b", 0)], total=7)
    registry = _registry(a, b)

    result = await registry.search_all(SearchOptions(query="lamp", page_size=4))

    assert [p.id for p in result.products] == ["a-0", "b-0", "a-1", "a-2"]
    assert result.total_results == 37
    assert [s.id for s in result.providers] == ["a", "b"]
    assert [s.result_count for s in result.providers] == [3, 1]


@pytest.mark.asyncio
async def test_search_all_truncates_to_page_size():
    a = FakeProvider("a", products=[make_product("a", i) for i in range(5)])
    b = FakeProvider("b", products=[make_product("b", i) for i in range(5)])

    result = await _registry(a, b).search_all(SearchOptions(query="lamp", page_size=3))

    assert [p.id for p in result.products] == ["a-0", "b-0", "a-1"]
    assert result.total_results == 10


@pytest.mark.asyncio
async def test_search_all_isolates_provider_failures():
    ok = FakeProvider("ok", products=[make_product("ok", 0)], total=1)
    broken = FakeProvider("broken", error=RuntimeError("upstream exploded"))

    result = await _registry(broken, ok).search_all(SearchOptions(query="lamp"))

    assert [p.id for p in result.products] == ["ok-0"]
    assert result.total_results == 1
    summaries = {s.id: s for s in result.providers}
    assert summaries["broken"].error == "upstream exploded"
    assert summaries["broken"].result_count == 0
    assert summaries["ok"].error is None


@pytest.mark.asyncio
async def test_search_all_skips_unavailable_and_unconfigured():
    live = FakeProvider("live", products=[make_product("live", 0)])
    down = FakeProvider("down", status="error", products=[make_product("down", 0)])
    unconfigured = FakeProvider("unconfigured", configured=False, products=[make_product("x", 0)])

    result = await _registry(live, down, unconfigured).search_all(SearchOptions(query="lamp"))

    assert [s.id for s in result.providers] == ["live"]
    assert down.search_calls == []
    assert unconfigured.search_calls == []


@pytest.mark.asyncio
async def test_search_all_with_no_enabled_providers_is_empty():
    result = await _registry(FakeProvider("down", status="unavailable")).search_all(
        SearchOptions(query="lamp", page=2)
    )

    assert result.products == []
    assert result.total_results == 0
    assert result.providers == []
    assert result.page == 2


@pytest.mark.asyncio
async def test_run_provider_search_times_out():
    slow = FakeProvider("slow", delay=1.0, products=[make_product("slow", 0)])

    result, summary = await run_provider_search(slow, SearchOptions(query="lamp"), timeout_seconds=0.05)

    assert result is None
    assert summary.error == "Search timed out after 0.05s"


@pytest.mark.asyncio
async def test_search_all_timeout_does_not_block_others(monkeypatch):
    monkeypatch.setenv("PRODUCT_SEARCH_PROVIDER_TIMEOUT_SECONDS", "0.05")
    slow = FakeProvider("slow", delay=1.0)
    fast = FakeProvider("fast", products=[make_product("fast", 0)])

    result = await _registry(slow, fast).search_all(SearchOptions(query="lamp"))

    assert [p.id for p in result.products] == ["fast-0"]
    assert "timed out" in {s.id: s for s in result.providers}["slow"].error


@pytest.mark.asyncio
async def test_search_provider_reports_errors_without_raising():
    registry = _registry(
        FakeProvider("off", configured=False),
        FakeProvider("boom", error=ValueError("bad gateway")),
        FakeProvider("ok", products=[make_product("ok", 0)], total=42),
    )
    options = SearchOptions(query="lamp")

    missing = await registry.search_provider("nope", options)
    assert missing.providers[0].error == "Provider not found"
    assert missing.products == []

    off = await registry.search_provider("off", options)
    assert off.providers[0].error == "Provider not configured"

    boom = await registry.search_provider("boom", options)
    assert boom.providers[0].error == "bad gateway"
    assert boom.total_results == 0

    ok = await registry.search_provider("ok", options)
    assert ok.total_results == 42
    assert [p.id for p in ok.products] == ["ok-0"]


@pytest.mark.asyncio
async def test_lookup_by_ean_stops_at_first_hit():
    y_hit = make_product("y", 0, ean="8712345678901")
    z_hit = make_product("z", 0, ean="8712345678901")
    x = FakeProvider("x")
    y = FakeProvider("y", ean_products={"8712345678901": y_hit})
    z = FakeProvider("z", ean_products={"8712345678901": z_hit})

    product = await _registry(x, y, z).lookup_by_ean("8712345678901")

    assert product is y_hit
    assert x.ean_calls == ["8712345678901"]
    assert z.ean_calls == []


@pytest.mark.asyncio
async def test_lookup_by_ean_miss_returns_none():
    assert await _registry(FakeProvider("x")).lookup_by_ean("000") is None


def test_find_provider_for_url_puts_scrapers_last():
    scraper = FakeProvider("scraper", type="scraper")
    shop = FakeProvider("shop", url_fragment="shop.nl")
    registry = _registry(scraper, shop)

    assert registry.find_provider_for_url("https://www.shop.nl/p/1") is shop
    assert registry.find_provider_for_url("https://elsewhere.com/p/1") is scraper


def test_unregister_type_removes_only_that_type():
    registry = _registry(FakeProvider("a"), FakeProvider("f1", type="feed"), FakeProvider("f2", type="feed"))

    assert registry.unregister_type("feed") == 2
    assert [p.id for p in registry.get_all()] == ["a"]


@pytest.mark.asyncio
async def test_get_enabled_checks_status_concurrently_in_order():
    started = []

    class Slow(FakeProvider):
        async def get_status(self):
            started.append(self.id)
            await asyncio.sleep(0.01)
            return self.status

    registry = _registry(Slow("first"), Slow("second", status="disabled"), Slow("third"))

    enabled = await registry.get_enabled()

    assert [p.id for p in enabled] == ["first", "third"]
    assert sorted(started) == ["first", "second", "third"]
