"""Elasticsearch client factory for the product search index.

The official client is synchronous; callers wrap blocking calls in
``asyncio.to_thread``.

Env vars:
  SEARCH_INDEX_ENABLED: "true" to turn the index on
  SEARCH_INDEX_HOST   : e.g. "https://search.example.com" or a bare hostname (https:443 assumed)
  SEARCH_INDEX_API_KEY: optional API key
  SEARCH_INDEX_NAME   : index name, default "products"
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from urllib.parse import urlparse

from elasticsearch import Elasticsearch

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "products"


def is_search_index_enabled() -> bool:
    return os.getenv("SEARCH_INDEX_ENABLED", "false").lower() == "true" and bool(os.getenv("SEARCH_INDEX_HOST"))


def get_index_name() -> str:
    return os.getenv("SEARCH_INDEX_NAME") or DEFAULT_INDEX_NAME


def normalize_host(host: str) -> str:
    """Return a URL with scheme and port, which the client requires."""
    if not host.startswith(("http://", "https://")):
        host = f"https://{host}"
    parsed = urlparse(host)
    if parsed.port:
        return f"{parsed.scheme}://{parsed.hostname}:{parsed.port}"
    default_port = 443 if parsed.scheme == "https" else 80
    return f"{parsed.scheme}://{parsed.hostname}:{default_port}"


@lru_cache(maxsize=1)
def get_client() -> Elasticsearch:
    if not is_search_index_enabled():
        raise ConfigurationError(
            "Search index is not configured. Set SEARCH_INDEX_HOST and SEARCH_INDEX_ENABLED=true"
        )

    host = normalize_host(os.environ["SEARCH_INDEX_HOST"])
    api_key = os.getenv("SEARCH_INDEX_API_KEY")
    logger.info("Connecting to search index at %s", host)
    return Elasticsearch(
        host,
        api_key=api_key or None,
        request_timeout=10,
        max_retries=3,
        retry_on_timeout=True,
    )


def reset_client() -> None:
    get_client.cache_clear()
