import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch
from httpx import AsyncClient, ASGITransport

from fakes import FakeProvider, make_product
from main import app, get_session
from product_search.feeds.importer import FeedImporter
from product_search.service import ProductSearchService, get_search_service
from routes.product_feeds import get_feed_importer

EAN = "8710103974345"


@pytest.fixture
def service(session_factory):
    a = FakeProvider("a", products=[make_product("a", i) for i in range(3)], total=3)
    b = FakeProvider("b", products=[make_product("b", 0, ean=EAN)], total=1, ean_products={
        EAN: make_product("b", 0, ean=EAN),
    })
    return ProductSearchService(builtin_providers=[a, b], session_factory=session_factory)


@pytest_asyncio.fixture(name="client")
async def client_fixture(session, session_factory, service):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_search_service] = lambda: service
    app.dependency_overrides[get_feed_importer] = lambda: FeedImporter(session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_metrics_exposes_provider_histogram(client):
    await client.get("/products/search", params={"q": "lamp"})
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "search_provider_duration_seconds" in response.text


@pytest.mark.asyncio
async def test_search_requires_query(client):
    response = await client.get("/products/search", params={"q": "   "})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_search_aggregates_providers(client):
    response = await client.get("/products/search", params={"q": "lamp", "pageSize": 4})

    assert response.status_code == 200
    body = response.json()
    assert [p["id"] for p in body["products"]] == ["a-0", "b-0", "a-1", "a-2"]
    assert body["total_results"] == 4
    assert {p["id"] for p in body["providers"]} == {"a", "b", "scraper"}


@pytest.mark.asyncio
async def test_search_single_provider(client):
    response = await client.get("/products/search", params={"q": "lamp", "provider": "b"})

    body = response.json()
    assert [p["id"] for p in body["products"]] == ["b-0"]
    assert [p["id"] for p in body["providers"]] == ["b"]


@pytest.mark.asyncio
async def test_search_clamps_page_size(client, service):
    await client.get("/products/search", params={"q": "lamp", "pageSize": 500})
    assert service.registry.get("a").search_calls[-1].page_size == 50


@pytest.mark.asyncio
async def test_search_rejects_inverted_price_range(client):
    response = await client.get("/products/search", params={"q": "lamp", "priceMin": 50, "priceMax": 10})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_search_available_and_providers(client):
    available = await client.get("/products/search/available")
    assert available.json() == {"available": True}

    providers = await client.get("/products/providers")
    assert [p["id"] for p in providers.json()] == ["a", "b", "scraper"]


@pytest.mark.asyncio
async def test_ean_lookup(client):
    found = await client.get(f"/products/ean/{EAN}")
    assert found.status_code == 200
    assert found.json()["provider_id"] == "b"

    missing = await client.get("/products/ean/0000000000000")
    assert missing.status_code == 404
    assert missing.json()["error"] == "ResourceNotFoundError"
    assert missing.json()["detail"] == {"ean": "0000000000000"}


@pytest.mark.asyncio
async def test_scrape_rejects_invalid_url(client):
    response = await client.post("/products/scrape", json={"url": "not-a-url"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_scrape_uses_bolcom_lookup_for_bolcom_urls(client, service):
    product = make_product("bolcom", 0, ean="9200000012345678", title="Airfryer")
    service.registry.register(FakeProvider("bolcom", ean_products={"9200000012345678": product}))

    response = await client.post(
        "/products/scrape",
        json={"url": "https://www.bol.com/nl/nl/p/airfryer/9200000012345678/"},
    )

    body = response.json()
    assert body["success"] is True
    assert body["data"]["source"] == "bolcom"
    assert body["data"]["title"] == "Airfryer"


@pytest.mark.asyncio
async def test_scrape_falls_back_to_page_scraper(client, service):
    scraped = make_product("scraper", 0, title="Dyson V15", url="https://www.coolblue.nl/product/9")
    with patch.object(service, "scrape_product_url", AsyncMock(return_value=scraped)):
        response = await client.post("/products/scrape", json={"url": "https://www.coolblue.nl/product/9"})

    body = response.json()
    assert body["success"] is True
    assert body["data"]["source"] == "scrape"
    assert body["data"]["retailer"] == "coolblue"
    assert body["data"]["url"] == "https://www.coolblue.nl/product/9"


@pytest.mark.asyncio
async def test_scrape_without_title_reports_failure(client, service):
    with patch.object(service, "scrape_product_url", AsyncMock(return_value=None)):
        response = await client.post("/products/scrape", json={"url": "https://shop.example/p"})

    assert response.status_code == 200
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_import_feed_upload(client, service, feed_provider_row):
    csv_bytes = (
        "aw_product_id,product_name,search_price,merchant_deep_link\n"
        "a1,Smeg waterkoker,129.00,https://www.coolblue.nl/product/a1\n"
    ).encode("utf-8")

    response = await client.post(
        "/admin/product-feeds/import",
        files={"file": ("coolblue.csv", csv_bytes, "text/csv")},
        data={"provider_id": "awin_coolblue"},
    )

    assert response.status_code == 200
    assert response.json()["imported"] == 1
    # Feed providers were reloaded with the new catalog
    assert service.registry.get("awin_coolblue") is not None


@pytest.mark.asyncio
async def test_import_feed_structural_error_is_400(client, feed_provider_row):
    response = await client.post(
        "/admin/product-feeds/import",
        files={"file": ("bad.csv", b"name\nLamp\n", "text/csv")},
        data={"provider_id": "awin_coolblue"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "MissingColumnsError"
    assert body["detail"]["missing"] == ["id", "url"]


@pytest.mark.asyncio
async def test_import_feed_unknown_provider(client):
    response = await client.post(
        "/admin/product-feeds/import",
        files={"file": ("feed.csv", b"id,title,url\n1,a,https://x.example\n", "text/csv")},
        data={"provider_id": "nope"},
    )
    assert response.status_code == 404
    assert response.json()["error"] == "ResourceNotFoundError"


@pytest.mark.asyncio
async def test_sync_without_feed_url_is_400(client, feed_provider_row):
    response = await client.post("/admin/product-feeds/awin_coolblue/sync")
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_reindex_requires_search_index(client):
    response = await client.post("/admin/product-feeds/reindex")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_reindex_runs_full_resync(client, monkeypatch):
    monkeypatch.setenv("SEARCH_INDEX_ENABLED", "true")
    monkeypatch.setenv("SEARCH_INDEX_HOST", "localhost:9200")
    resync = AsyncMock(return_value={"synced": 4, "failed": 0, "deleted": 1, "duration": 0.2})
    recreate = AsyncMock()

    with patch("routes.product_feeds.full_resync", resync), \
            patch("routes.product_feeds.recreate_products_index", recreate):
        response = await client.post("/admin/product-feeds/reindex", params={"recreate": "true"})

    assert response.status_code == 200
    assert response.json()["synced"] == 4
    recreate.assert_awaited_once()


@pytest.mark.asyncio
async def test_sync_all_reloads_feed_providers_once(client, service, session, feed_provider_row):
    feed_provider_row.feed_url = "https://feeds.example/coolblue.csv"
    session.add(feed_provider_row)
    await session.commit()

    downloaded = AsyncMock(return_value=(
        "aw_product_id,product_name,search_price,merchant_deep_link\n"
        "a1,Smeg waterkoker,129.00,https://www.coolblue.nl/product/a1\n"
    ))
    reload = AsyncMock()
    with patch("product_search.feeds.importer.download_feed", downloaded), \
            patch.object(service, "reload_feed_providers", reload):
        response = await client.post("/admin/product-feeds/sync-all")

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"total": 1, "synced": 1, "failed": 0}
    assert body["results"][0]["provider_id"] == "awin_coolblue"
    reload.assert_awaited_once()
