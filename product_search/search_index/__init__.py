from product_search.search_index.client import get_client, get_index_name, is_search_index_enabled
from product_search.search_index.query_expansion import expand_query

__all__ = ["get_client", "get_index_name", "is_search_index_enabled", "expand_query"]
