from product_search.providers.base import ProductSearchProvider
from product_search.providers.bolcom import BolcomProvider
from product_search.providers.feed import FeedProvider, create_feed_provider, load_feed_providers
from product_search.providers.scraper import ScraperProvider
from product_search.providers.search_index import SearchIndexProvider

__all__ = [
    "ProductSearchProvider",
    "BolcomProvider",
    "FeedProvider",
    "ScraperProvider",
    "SearchIndexProvider",
    "create_feed_provider",
    "load_feed_providers",
]
