"""Per-provider search execution with timeout, fault isolation and metrics."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Optional, Tuple, TYPE_CHECKING

from exceptions import ProviderTimeoutError
from observability.metrics import search_provider_duration_seconds, search_provider_requests_total
from product_search.models import ProviderSearchSummary, SearchOptions, SearchResult

if TYPE_CHECKING:
    from product_search.providers.base import ProductSearchProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


def provider_timeout_seconds() -> float:
    return float(os.getenv("PRODUCT_SEARCH_PROVIDER_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))


def _record(provider_id: str, status: str, started: float) -> None:
    elapsed = time.monotonic() - started
    search_provider_duration_seconds.labels(provider=provider_id, status=status).observe(elapsed)
    search_provider_requests_total.labels(provider=provider_id, status=status).inc()


async def run_provider_search(
    provider: "ProductSearchProvider",
    options: SearchOptions,
    *,
    timeout_seconds: Optional[float] = None,
) -> Tuple[Optional[SearchResult], ProviderSearchSummary]:
    """
    Run one provider's search. Never raises: a timeout or exception becomes
    a zero-result summary carrying the error message.
    """
    timeout = timeout_seconds if timeout_seconds is not None else provider_timeout_seconds()
    started = time.monotonic()
    try:
        result = await asyncio.wait_for(provider.search(options), timeout=timeout)
    except asyncio.TimeoutError:
        _record(provider.id, "timeout", started)
        timeout_error = ProviderTimeoutError(f"Search timed out after {timeout:g}s", provider=provider.id)
        logger.warning(f"[{provider.id}] {timeout_error.message}")
        return None, ProviderSearchSummary(
            id=provider.id,
            name=provider.name,
            result_count=0,
            error=timeout_error.message,
        )
    except Exception as e:
        _record(provider.id, "error", started)
        logger.error(f"[{provider.id}] Search error: {type(e).__name__}: {e}")
        return None, ProviderSearchSummary(
            id=provider.id,
            name=provider.name,
            result_count=0,
            error=str(e) or type(e).__name__,
        )

    _record(provider.id, "ok", started)
    return result, ProviderSearchSummary(
        id=provider.id,
        name=provider.name,
        result_count=len(result.products),
    )
