"""
Affiliate link resolution.

Providers configured in the product_provider table can carry an affiliate
code plus hostname patterns. Outbound product URLs whose hostname matches a
pattern get the code applied, either as a named query parameter or appended
verbatim.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse
import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from models import ProductProvider

logger = logging.getLogger(__name__)


@dataclass
class AffiliateConfig:
    """Affiliate settings taken from a provider row."""
    affiliate_code: Optional[str]
    affiliate_param: Optional[str] = None
    url_patterns: Optional[str] = None
    priority: int = 0


def _split_patterns(patterns: str) -> List[str]:
    return [p.strip().lower() for p in patterns.split(",") if p.strip()]


def _hostname(url: str) -> Optional[str]:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed.hostname.lower()


def url_matches_patterns(url: str, patterns: str) -> bool:
    """True when any comma-separated pattern is a substring of the URL's hostname."""
    try:
        hostname = _hostname(url)
    except ValueError:
        return False
    if not hostname:
        return False
    return any(pattern in hostname for pattern in _split_patterns(patterns))


def select_affiliate_config(configs: Iterable[AffiliateConfig], url: str) -> Optional[AffiliateConfig]:
    """
    Pick the highest-priority config whose patterns match the URL.

    Configs without a code or without patterns never match.
    """
    ranked = sorted(configs, key=lambda c: c.priority, reverse=True)
    for config in ranked:
        if not config.affiliate_code or not config.url_patterns:
            continue
        if url_matches_patterns(url, config.url_patterns):
            return config
    return None


def apply_affiliate_code(url: str, config: AffiliateConfig) -> str:
    """
    Apply an affiliate code to a URL.

    With affiliate_param set, the code is written as ?param=code (replacing
    any previous value). Without it, the code is appended as-is, e.g.
    "tag=abc" becomes ?tag=abc or &tag=abc. Both forms are idempotent.
    """
    if not config.affiliate_code:
        return url

    try:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return url

        if config.affiliate_param:
            query_params = parse_qs(parsed.query, keep_blank_values=True)
            if query_params.get(config.affiliate_param) == [config.affiliate_code]:
                return url

            query_params[config.affiliate_param] = [config.affiliate_code]
            new_query = urlencode(query_params, doseq=True)
        else:
            code = config.affiliate_code
            if code[:1] in ("?", "&"):
                code = code[1:]
            if code in parsed.query:
                return url

            new_query = f"{parsed.query}&{code}" if parsed.query else code

        return urlunparse((
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            new_query,
            parsed.fragment,
        ))
    except ValueError as e:
        logger.error(f"[Affiliate] Error applying affiliate code to {url}: {e}")
        return url


async def load_affiliate_configs(session: AsyncSession) -> List[AffiliateConfig]:
    """Affiliate configs of every enabled provider that has a code and URL patterns."""
    stmt = (
        select(ProductProvider)
        .where(ProductProvider.enabled == True)  # noqa: E712
        .where(ProductProvider.affiliate_code.is_not(None))
        .where(ProductProvider.url_patterns.is_not(None))
        .order_by(ProductProvider.priority.desc())
    )
    providers = (await session.exec(stmt)).all()
    return [
        AffiliateConfig(
            affiliate_code=p.affiliate_code,
            affiliate_param=p.affiliate_param,
            url_patterns=p.url_patterns,
            priority=p.priority,
        )
        for p in providers
    ]


def resolve_affiliate_url(url: str, configs: Iterable[AffiliateConfig]) -> Optional[str]:
    """The rewritten URL when a config matches and changes it, else None."""
    config = select_affiliate_config(configs, url)
    if not config:
        return None
    enhanced = apply_affiliate_code(url, config)
    return enhanced if enhanced != url else None


async def find_affiliate_config_for_url(session: AsyncSession, url: str) -> Optional[AffiliateConfig]:
    """Look up the matching affiliate config among enabled providers."""
    try:
        if not _hostname(url):
            return None
        configs = await load_affiliate_configs(session)
    except Exception as e:
        logger.error(f"[Affiliate] Error finding affiliate config: {e}")
        return None

    return select_affiliate_config(configs, url)


async def enhance_url_with_affiliate(session: AsyncSession, url: str) -> str:
    config = await find_affiliate_config_for_url(session, url)
    if not config:
        return url
    return apply_affiliate_code(url, config)
