"""
Merchant catalog CSV parser.

Affiliate networks ship product feeds with merchant-specific column names;
COLUMN_MAPPINGS folds the known spellings onto one set of fields. Each data
row is parsed on its own: a bad row is recorded in `errors` and the rest of
the feed still imports. Only a missing header/data section or absent
required columns abort the parse.
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from exceptions import EmptyFeedError, MissingColumnsError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "title", "url")
PRICE_FIELDS = ("price", "original_price")

COLUMN_MAPPINGS: Dict[str, str] = {
    # id
    "aw_product_id": "id",
    "product_id": "id",
    "merchant_product_id": "id",
    "id": "id",
    # title
    "product_name": "title",
    "title": "title",
    "name": "title",
    # description
    "description": "description",
    "product_description": "description",
    # price
    "search_price": "price",
    "price": "price",
    "current_price": "price",
    "sale_price": "price",
    # original / RRP price
    "rrp_price": "original_price",
    "was_price": "original_price",
    "rrp": "original_price",
    "original_price": "original_price",
    # currency
    "currency": "currency",
    "price_currency": "currency",
    # url
    "merchant_deep_link": "url",
    "product_url": "url",
    "deeplink": "url",
    "merchant_product_url": "url",
    "url": "url",
    "link": "url",
    "product_link": "url",
    # affiliate url
    "aw_deep_link": "affiliate_url",
    "affiliate_link": "affiliate_url",
    "tracking_link": "affiliate_url",
    # image
    "aw_image_url": "image_url",
    "merchant_image_url": "image_url",
    "image_url": "image_url",
    "image": "image_url",
    # ean
    "ean": "ean",
    "gtin": "ean",
    "barcode": "ean",
    "upc": "ean",
    # brand
    "brand_name": "brand",
    "brand": "brand",
    "manufacturer": "brand",
    # category
    "category_name": "category",
    "merchant_category": "category",
    "category": "category",
    "product_category": "category",
    # availability
    "stock_status": "availability",
    "in_stock": "availability",
    "availability": "availability",
    "stock_quantity": "availability",
}

_LINE_SPLIT = re.compile(r"\r?\n")
_CURRENCY_AND_SPACE = re.compile(r"[€$£¥₹\s]")
# Leading numeric prefix only: "12.5abc" -> 12.5
_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_IN_STOCK_EXACT = {"1", "true", "yes"}
_IN_STOCK_MARKERS = ("in stock", "available", "in_stock", "instock")
_OUT_OF_STOCK_EXACT = {"0", "false", "no"}
_OUT_OF_STOCK_MARKERS = ("out of stock", "unavailable", "out_of_stock", "outofstock")


@dataclass
class FeedProductRow:
    id: str
    title: str
    url: str
    description: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    original_price: Optional[float] = None
    affiliate_url: Optional[str] = None
    image_url: Optional[str] = None
    ean: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    availability: Optional[str] = None
    raw: Dict[str, str] = field(default_factory=dict)


@dataclass
class RowParseError:
    """A data row that could not be turned into a product. `row` is the file line, header = 1."""

    row: int
    message: str

    def __str__(self) -> str:
        return f"Row {self.row}: {self.message}"


@dataclass
class FeedParseResult:
    products: List[FeedProductRow]
    errors: List[RowParseError]
    total_rows: int
    parsed_rows: int


def parse_price(value: Optional[str]) -> Optional[float]:
    """
    Parse a price written in either European or US notation.

    "1.234,56" -> 1234.56, "1,234.56" -> 1234.56, "19,99" -> 19.99,
    "€ 49.00" -> 49.0. Returns None for anything without a leading number.
    """
    if not value:
        return None

    cleaned = _CURRENCY_AND_SPACE.sub("", value)
    comma = cleaned.find(",")
    european = comma != -1 and (comma > cleaned.rfind(".") or "." not in cleaned)

    if european:
        cleaned = cleaned.replace(".", "").replace(",", ".", 1)
    else:
        cleaned = cleaned.replace(",", "")

    match = _LEADING_FLOAT.match(cleaned)
    if not match:
        return None
    return float(match.group(0))


def map_availability(value: Optional[str]) -> str:
    """Normalize a free-text stock value to in_stock, out_of_stock or unknown."""
    if not value:
        return "unknown"

    lower = value.strip().lower()
    if lower in _OUT_OF_STOCK_EXACT or any(m in lower for m in _OUT_OF_STOCK_MARKERS):
        return "out_of_stock"
    if lower in _IN_STOCK_EXACT or any(m in lower for m in _IN_STOCK_MARKERS):
        return "in_stock"
    return "unknown"


def build_search_text(
    title: Optional[str],
    description: Optional[str] = None,
    brand: Optional[str] = None,
    category: Optional[str] = None,
) -> str:
    return " ".join(part for part in (title, description, brand, category) if part).lower()


def _split_fields(line: str) -> List[str]:
    values = next(csv.reader([line], skipinitialspace=True), [])
    return [v.strip() for v in values]


def _normalize_header(header: str) -> str:
    return header.replace("\ufeff", "").strip().lower().replace('"', "").replace("'", "")


def parse_feed_csv(text: str) -> FeedParseResult:
    lines = _LINE_SPLIT.split(text)
    if len(lines) < 2:
        raise EmptyFeedError("CSV file is empty or has no data rows")

    headers = _split_fields(lines[0].replace("\ufeff", ""))
    column_map: Dict[int, str] = {}
    for index, header in enumerate(headers):
        mapped = COLUMN_MAPPINGS.get(_normalize_header(header))
        if mapped:
            column_map[index] = mapped

    mapped_fields = set(column_map.values())
    missing = [f for f in REQUIRED_FIELDS if f not in mapped_fields]
    if missing:
        raise MissingColumnsError(missing, headers)

    products: List[FeedProductRow] = []
    errors: List[RowParseError] = []
    total_rows = 0

    for line_number, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        total_rows += 1

        try:
            values = _split_fields(line)
        except csv.Error as e:
            errors.append(RowParseError(line_number, str(e)))
            logger.warning(f"[FeedCsvParser] Failed to parse line {line_number}: {e}")
            continue

        parsed: Dict[str, object] = {}
        raw: Dict[str, str] = {}
        for index, value in enumerate(values):
            if index < len(headers):
                raw[headers[index]] = value
            target = column_map.get(index)
            # First non-empty column wins when a feed has synonyms side by side
            if not target or not value or target in parsed:
                continue
            if target in PRICE_FIELDS:
                price = parse_price(value)
                if price is not None:
                    parsed[target] = price
            else:
                parsed[target] = value

        if not all(parsed.get(f) for f in REQUIRED_FIELDS):
            errors.append(RowParseError(line_number, "Missing required fields (id, title, or url)"))
            continue

        products.append(FeedProductRow(raw=raw, **parsed))

    return FeedParseResult(
        products=products,
        errors=errors,
        total_rows=total_rows,
        parsed_rows=len(products),
    )
