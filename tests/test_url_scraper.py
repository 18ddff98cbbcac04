import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from models import ScrapedProduct
from product_search.providers.scraper import ScraperProvider
from product_search.url_scraper import detect_retailer, parse_html, scrape_url

JSON_LD_PAGE = """
<html><head>
<title>Fallback title</title>
<meta property="og:title" content="OG title">
<meta property="og:image" content="https://img.example/og.jpg">
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "BreadcrumbList"},
  {"@type": "Product", "name": "  LEGO   Technic  Porsche ",
   "image": ["https://img.example/1.jpg"],
   "offers": {"@type": "Offer", "price": "179,99", "priceCurrency": "EUR"}}
]}
</script>
</head><body></body></html>
"""

OG_PAGE = """
<html><head>
<meta property="og:title" content="Dyson V15">
<meta property="og:description" content="Cordless vacuum">
<meta property="og:image" content="https://img.example/dyson.jpg">
<meta property="og:site_name" content="Coolblue">
<meta property="product:price:amount" content="699.00">
<meta property="product:price:currency" content="EUR">
</head></html>
"""


def test_parse_prefers_json_ld():
    data = parse_html(JSON_LD_PAGE)

    assert data.title == "LEGO Technic Porsche"
    assert data.price == pytest.approx(179.99)
    assert data.currency == "EUR"
    assert data.image_url == "https://img.example/1.jpg"


def test_parse_falls_back_to_open_graph():
    data = parse_html(OG_PAGE)

    assert data.title == "Dyson V15"
    assert data.description == "Cordless vacuum"
    assert data.price == pytest.approx(699.0)
    assert data.site_name == "Coolblue"


def test_parse_falls_back_to_title_and_truncates():
    data = parse_html(f"<html><head><title>{'x' * 300}</title></head></html>")

    assert len(data.title) == 200
    assert data.title.endswith("...")


def test_parse_ignores_broken_json_ld():
    page = '<script type="application/ld+json">{not json</script><title>Plain</title>'
    assert parse_html(page).title == "Plain"


def test_detect_retailer():
    assert detect_retailer("https://www.bol.com/nl/p/1") == "bolcom"
    assert detect_retailer("https://www.coolblue.nl/product/1") == "coolblue"
    assert detect_retailer("https://unknown-shop.example/p") is None


@pytest.mark.asyncio
async def test_scrape_url_fetches_and_caches(session_factory):
    mock_response = MagicMock(status_code=200, text=OG_PAGE)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client.get = AsyncMock(return_value=mock_response)
        mock_client_class.return_value = mock_client

        first = await scrape_url("https://www.coolblue.nl/product/9", cache=session_factory)
        second = await scrape_url("https://www.coolblue.nl/product/9", cache=session_factory)

    assert first.title == second.title == "Dyson V15"
    assert mock_client.get.await_count == 1


@pytest.mark.asyncio
async def test_scrape_url_ignores_expired_cache(session, session_factory):
    session.add(ScrapedProduct(
        url="https://shop.example/p",
        title="Stale",
        expires_at=datetime.utcnow() - timedelta(hours=1),
    ))
    await session.commit()

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client.get = AsyncMock(return_value=MagicMock(status_code=200, text=OG_PAGE))
        mock_client_class.return_value = mock_client

        data = await scrape_url("https://shop.example/p", cache=session_factory)

    assert data.title == "Dyson V15"


@pytest.mark.asyncio
async def test_scrape_url_non_200_is_none():
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client.get = AsyncMock(return_value=MagicMock(status_code=403, text=""))
        mock_client_class.return_value = mock_client

        assert await scrape_url("https://shop.example/p") is None


@pytest.mark.asyncio
async def test_scraper_provider_never_searches():
    from product_search.models import SearchOptions

    provider = ScraperProvider()
    result = await provider.search(SearchOptions(query="anything"))

    assert result.products == []
    assert result.total_results == 0
    assert provider.matches_url("https://anything.example/")


@pytest.mark.asyncio
async def test_scraper_provider_builds_product():
    provider = ScraperProvider()
    with patch("product_search.providers.scraper.scrape_url", AsyncMock(return_value=parse_html(OG_PAGE))):
        product = await provider.scrape_product_url("https://www.coolblue.nl/product/9")

    assert product.id == ScraperProvider.product_id_for_url("https://www.coolblue.nl/product/9")
    assert product.id.startswith("scrape_")
    assert product.provider_id == "scraper"
    assert product.price == pytest.approx(699.0)


@pytest.mark.asyncio
async def test_scraper_provider_applies_matching_affiliate_code(session_factory, feed_provider_row):
    provider = ScraperProvider(cache=session_factory)
    with patch("product_search.providers.scraper.scrape_url", AsyncMock(return_value=parse_html(OG_PAGE))):
        tracked = await provider.scrape_product_url("https://www.coolblue.nl/product/9")
        untracked = await provider.scrape_product_url("https://www.fnac.be/a9")

    assert tracked.url == "https://www.coolblue.nl/product/9"
    assert tracked.affiliate_url == "https://www.coolblue.nl/product/9?ref=wishbubble"
    assert untracked.affiliate_url == "https://www.fnac.be/a9"
