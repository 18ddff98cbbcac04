"""Products index mapping and lifecycle helpers."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from elasticsearch import Elasticsearch
from elasticsearch.exceptions import BadRequestError, NotFoundError

from product_search.search_index.client import get_client, get_index_name

logger = logging.getLogger(__name__)

PRODUCTS_INDEX_SETTINGS = {
    "number_of_shards": 1,
    "analysis": {
        "analyzer": {
            "product_text": {
                "type": "custom",
                "tokenizer": "standard",
                "filter": ["lowercase", "asciifolding"],
            }
        }
    },
}

# Documents mirror feed_product rows plus the owning provider's name and priority
PRODUCTS_INDEX_MAPPINGS = {
    "properties": {
        "title": {"type": "text", "analyzer": "product_text"},
        "brand": {
            "type": "text",
            "analyzer": "product_text",
            "fields": {"raw": {"type": "keyword"}},
        },
        "description": {"type": "text", "analyzer": "product_text"},
        "category": {"type": "keyword"},
        "price": {"type": "float"},
        "availability": {"type": "keyword"},
        "providerPriority": {"type": "integer"},
        "providerId": {"type": "keyword"},
        "providerName": {"type": "keyword", "index": False},
        "imageUrl": {"type": "keyword", "index": False},
        "url": {"type": "keyword", "index": False},
        "affiliateUrl": {"type": "keyword", "index": False},
        "currency": {"type": "keyword"},
        "ean": {"type": "keyword"},
    }
}


async def ensure_products_index(es: Optional[Elasticsearch] = None) -> None:
    """Create the products index if it is missing."""
    es = es or get_client()
    index = get_index_name()

    exists = await asyncio.to_thread(es.indices.exists, index=index)
    if exists:
        return

    logger.info("Creating search index %s", index)
    try:
        await asyncio.to_thread(
            es.indices.create,
            index=index,
            settings=PRODUCTS_INDEX_SETTINGS,
            mappings=PRODUCTS_INDEX_MAPPINGS,
        )
    except BadRequestError as exc:
        # Lost a race with another worker
        if getattr(exc, "error", "") == "resource_already_exists_exception":
            return
        raise


async def recreate_products_index(es: Optional[Elasticsearch] = None) -> None:
    """Drop and recreate the products index for a full rebuild."""
    es = es or get_client()
    index = get_index_name()

    try:
        await asyncio.to_thread(es.indices.delete, index=index)
        logger.info("Deleted search index %s", index)
    except NotFoundError:
        pass

    await asyncio.to_thread(
        es.indices.create,
        index=index,
        settings=PRODUCTS_INDEX_SETTINGS,
        mappings=PRODUCTS_INDEX_MAPPINGS,
    )
    logger.info("Recreated search index %s", index)
