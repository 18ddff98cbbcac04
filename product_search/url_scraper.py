"""
Product metadata extraction from arbitrary retailer pages.

Sources are tried in order of reliability: JSON-LD Product objects,
Open Graph tags, then the plain <title> and meta description. Fields found
in an earlier source are never overwritten by a later one.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from models import ScrapedProduct
from product_search.feeds.csv_parser import parse_price

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "nl-NL,nl;q=0.9,en;q=0.8",
}

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000

RETAILERS = {
    "bol.com": "bolcom",
    "amazon": "amazon",
    "coolblue": "coolblue",
    "mediamarkt": "mediamarkt",
    "wehkamp": "wehkamp",
    "zalando": "zalando",
    "hema": "hema",
    "ikea": "ikea",
    "ah.nl": "ah",
    "jumbo": "jumbo",
    "kruidvat": "kruidvat",
    "action": "action",
    "aliexpress": "aliexpress",
    "wish": "wish",
}

SessionFactory = Callable[[], AsyncSession]


@dataclass
class ScrapedProductData:
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    image_url: Optional[str] = None
    site_name: Optional[str] = None


def _cache_hours() -> float:
    return float(os.getenv("SCRAPER_CACHE_HOURS", "24"))


def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _is_product_type(item: Dict[str, Any]) -> bool:
    kind = item.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def _price_value(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_price(value)
    return None


def _product_from_schema(product: Dict[str, Any]) -> ScrapedProductData:
    data = ScrapedProductData()

    if isinstance(product.get("name"), str):
        data.title = product["name"]
    if isinstance(product.get("description"), str):
        data.description = product["description"]

    image = product.get("image")
    if isinstance(image, str):
        data.image_url = image
    elif isinstance(image, list) and image and isinstance(image[0], str):
        data.image_url = image[0]
    elif isinstance(image, dict) and isinstance(image.get("url"), str):
        data.image_url = image["url"]

    offers = product.get("offers")
    offer = offers[0] if isinstance(offers, list) and offers else offers
    if isinstance(offer, dict):
        price = _price_value(offer.get("price"))
        if price is None:
            price = _price_value(offer.get("lowPrice"))
        data.price = price
        if isinstance(offer.get("priceCurrency"), str):
            data.currency = offer["priceCurrency"]

    return data


def extract_json_ld(soup: BeautifulSoup) -> Optional[ScrapedProductData]:
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            continue

        items = payload if isinstance(payload, list) else [payload]
        for item in items:
            if not isinstance(item, dict):
                continue
            if _is_product_type(item):
                return _product_from_schema(item)
            for graph_item in item.get("@graph") or []:
                if isinstance(graph_item, dict) and _is_product_type(graph_item):
                    return _product_from_schema(graph_item)

    return None


def _meta_content(soup: BeautifulSoup, *properties: str) -> Optional[str]:
    for prop in properties:
        tag = soup.find("meta", attrs={"property": prop})
        if tag and tag.get("content"):
            return tag["content"]
    return None


def extract_open_graph(soup: BeautifulSoup) -> ScrapedProductData:
    price = _meta_content(soup, "og:price:amount", "product:price:amount")
    return ScrapedProductData(
        title=_meta_content(soup, "og:title"),
        description=_meta_content(soup, "og:description"),
        image_url=_meta_content(soup, "og:image"),
        site_name=_meta_content(soup, "og:site_name"),
        price=parse_price(price) if price else None,
        currency=_meta_content(soup, "og:price:currency", "product:price:currency"),
    )


def extract_meta_tags(soup: BeautifulSoup) -> ScrapedProductData:
    data = ScrapedProductData()
    if soup.title and soup.title.string:
        data.title = soup.title.string
    description = soup.find("meta", attrs={"name": "description"})
    if description and description.get("content"):
        data.description = description["content"]
    return data


def parse_html(html: str) -> ScrapedProductData:
    soup = BeautifulSoup(html, "html.parser")
    data = extract_json_ld(soup) or ScrapedProductData()

    og = extract_open_graph(soup)
    data.title = data.title or og.title
    data.description = data.description or og.description
    data.image_url = data.image_url or og.image_url
    if data.price is None:
        data.price = og.price
    data.currency = data.currency or og.currency
    data.site_name = og.site_name

    meta = extract_meta_tags(soup)
    data.title = data.title or meta.title
    data.description = data.description or meta.description

    if data.title:
        data.title = _truncate(_clean_text(data.title), MAX_TITLE_LENGTH)
    if data.description:
        data.description = _truncate(_clean_text(data.description), MAX_DESCRIPTION_LENGTH)

    return data


def detect_retailer(url: str) -> Optional[str]:
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None
    for pattern, retailer in RETAILERS.items():
        if pattern in hostname:
            return retailer
    return None


async def _read_cache(cache: SessionFactory, url: str) -> Optional[ScrapedProductData]:
    async with cache() as session:
        row = (await session.exec(select(ScrapedProduct).where(ScrapedProduct.url == url))).first()
    if not row or row.expires_at <= datetime.utcnow():
        return None
    return ScrapedProductData(
        title=row.title,
        description=row.description,
        price=row.price,
        currency=row.currency,
        image_url=row.image_url,
    )


async def _write_cache(cache: SessionFactory, url: str, data: ScrapedProductData) -> None:
    expires_at = datetime.utcnow() + timedelta(hours=_cache_hours())
    async with cache() as session:
        row = (await session.exec(select(ScrapedProduct).where(ScrapedProduct.url == url))).first()
        if row is None:
            row = ScrapedProduct(url=url, expires_at=expires_at)
        else:
            row.updated_at = datetime.utcnow()
        row.title = data.title
        row.description = data.description
        row.price = data.price
        row.currency = data.currency or "EUR"
        row.image_url = data.image_url
        row.expires_at = expires_at
        session.add(row)
        await session.commit()


async def scrape_url(url: str, cache: Optional[SessionFactory] = None) -> Optional[ScrapedProductData]:
    """
    Fetch a page and extract product metadata.

    When `cache` is given, fresh ScrapedProduct rows short-circuit the fetch and
    successful scrapes are stored for SCRAPER_CACHE_HOURS. Returns None when the
    page cannot be fetched.
    """
    if cache is not None:
        try:
            cached = await _read_cache(cache, url)
            if cached:
                return cached
        except Exception as e:
            logger.warning(f"[UrlScraper] Cache read failed for {url}: {e}")

    try:
        async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
            resp = await client.get(url, headers=_REQUEST_HEADERS)
    except httpx.HTTPError as e:
        logger.error(f"[UrlScraper] Error fetching {url}: {e}")
        return None

    if resp.status_code != 200:
        logger.warning(f"[UrlScraper] HTTP {resp.status_code} for {url}")
        return None

    data = parse_html(resp.text)

    if cache is not None and data.title:
        try:
            await _write_cache(cache, url, data)
        except Exception as e:
            logger.warning(f"[UrlScraper] Cache write failed for {url}: {e}")

    return data
