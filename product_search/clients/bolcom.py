"""Bol.com Marketing Catalog API client.

Search, EAN lookup and partner click links for Bol.com products.

Required env vars:
  BOLCOM_CLIENT_ID    : OAuth2 client ID from the affiliate dashboard
  BOLCOM_CLIENT_SECRET: OAuth2 client secret

Optional:
  BOLCOM_SITE_ID      : affiliate site ID; without it links are not rewritten
  BOLCOM_COUNTRY_CODE : NL (default) or BE
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode, urlparse

import httpx

from exceptions import ConfigurationError, RateLimitError, SearchProviderError

logger = logging.getLogger(__name__)

_TOKEN_URL = "https://login.bol.com/token?grant_type=client_credentials"
_API_BASE_URL = "https://api.bol.com/marketing/catalog/v1"
_PARTNER_CLICK_URL = "https://partner.bol.com/click/click"

# Refresh this many seconds before the token actually expires
_TOKEN_EXPIRY_MARGIN = 30.0

_PRODUCT_ID_SEGMENT = re.compile(r"^\d{13,16}$")

MAX_PAGE_SIZE = 50


def is_bolcom_url(url: str) -> bool:
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return False
    return bool(hostname) and hostname.lower().endswith("bol.com")


def extract_ean_from_url(url: str) -> Optional[str]:
    """
    Pull the product id out of a Bol.com URL.

    e.g. https://www.bol.com/nl/nl/p/product-name/9300000123456789/ -> "9300000123456789"
    The last 13-16 digit path segment wins.
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return None

    for part in reversed([p for p in path.split("/") if p]):
        if _PRODUCT_ID_SEGMENT.match(part):
            return part
    return None


class BolcomClient:
    """Thin async wrapper around the Marketing Catalog API with token caching."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        site_id: Optional[str] = None,
        country_code: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id if client_id is not None else os.getenv("BOLCOM_CLIENT_ID", "")
        self.client_secret = (
            client_secret if client_secret is not None else os.getenv("BOLCOM_CLIENT_SECRET", "")
        )
        self.site_id = site_id if site_id is not None else os.getenv("BOLCOM_SITE_ID", "")
        self.country_code = (country_code or os.getenv("BOLCOM_COUNTRY_CODE") or "NL").upper()
        self.timeout = timeout

        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    # ------------------------------------------------------------------
    # OAuth2 client-credentials flow
    # ------------------------------------------------------------------

    async def _get_access_token(self) -> str:
        if not self.is_configured():
            raise ConfigurationError("Bol.com API credentials not configured")

        async with self._token_lock:
            if self._token and time.time() < self._token_expires_at - _TOKEN_EXPIRY_MARGIN:
                return self._token

            basic = base64.b64encode(
                f"{self.client_id}:{self.client_secret}".encode("utf-8")
            ).decode("utf-8")

            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(
                        _TOKEN_URL,
                        headers={
                            "Authorization": f"Basic {basic}",
                            "Content-Type": "application/x-www-form-urlencoded",
                        },
                    )
            except httpx.HTTPError as e:
                raise SearchProviderError(
                    f"Bol.com token request failed: {e}", provider="bolcom"
                ) from e

            if resp.status_code != 200:
                raise SearchProviderError(
                    f"Failed to get Bol.com access token: {resp.status_code}", provider="bolcom"
                )

            payload = resp.json()
            token = payload.get("access_token")
            if not token:
                raise SearchProviderError("No access_token in Bol.com OAuth response", provider="bolcom")

            self._token = token
            self._token_expires_at = time.time() + float(payload.get("expires_in", 300))
            logger.info("[BolcomClient] OAuth token acquired")
            return token

    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        token = await self._get_access_token()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.get(
                    f"{_API_BASE_URL}{path}",
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                        "Accept-Language": "nl",
                    },
                )
        except httpx.HTTPError as e:
            raise SearchProviderError(f"Bol.com request failed: {e}", provider="bolcom") from e

    # ------------------------------------------------------------------
    # Catalog endpoints
    # ------------------------------------------------------------------

    async def search_products(
        self,
        term: str,
        *,
        page: int = 1,
        page_size: int = 12,
        sort: str = "RELEVANCE",
        country_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "search-term": term,
            "country-code": country_code or self.country_code,
            "page": page,
            "page-size": min(page_size, MAX_PAGE_SIZE),
            "sort": sort,
            "include-offer": "true",
            "include-media": "true",
            "include-rating": "true",
        }
        resp = await self._get("/products/search", params)

        if resp.status_code == 429:
            raise RateLimitError("Rate limit exceeded. Please try again later.")
        if resp.status_code != 200:
            raise SearchProviderError(f"Bol.com API error: {resp.status_code}", provider="bolcom")

        return resp.json()

    async def get_product_by_ean(self, ean: str, country_code: Optional[str] = None) -> Optional[Dict[str, Any]]:
        params = {
            "country-code": country_code or self.country_code,
            "include-offer": "true",
            "include-media": "true",
            "include-rating": "true",
        }
        resp = await self._get(f"/products/{ean}", params)

        if resp.status_code == 404:
            return None
        if resp.status_code == 429:
            raise RateLimitError("Rate limit exceeded. Please try again later.")
        if resp.status_code != 200:
            raise SearchProviderError(f"Bol.com API error: {resp.status_code}", provider="bolcom")

        return resp.json()

    def generate_affiliate_link(self, product_url: str, sub_id: Optional[str] = None) -> str:
        """
        Wrap a product URL in a partner click link.

        Format: https://partner.bol.com/click/click?p=1&t=url&s=SITE_ID&url=PRODUCT_URL&f=TXL
        """
        if not self.site_id:
            return product_url

        params = {
            "p": "1",
            "t": "url",
            "s": self.site_id,
            "url": product_url,
            "f": "TXL",
        }
        if sub_id:
            params["subid"] = sub_id

        return f"{_PARTNER_CLICK_URL}?{urlencode(params)}"
