"""
Model exports.

Tables are organized by domain module:
- catalog.py: product providers, feed rows, import logs and the scrape cache
"""

from models.catalog import (
    FeedImportLog,
    FeedProduct,
    ProductProvider,
    ScrapedProduct,
)

__all__ = [
    "FeedImportLog",
    "FeedProduct",
    "ProductProvider",
    "ScrapedProduct",
]
