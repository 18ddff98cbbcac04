from .csv_parser import (
    COLUMN_MAPPINGS,
    FeedParseResult,
    FeedProductRow,
    RowParseError,
    build_search_text,
    map_availability,
    parse_feed_csv,
    parse_price,
)
from .importer import FeedImporter, FeedImportResult, FeedSyncOutcome, download_feed

__all__ = [
    "COLUMN_MAPPINGS",
    "FeedParseResult",
    "FeedProductRow",
    "RowParseError",
    "build_search_text",
    "map_availability",
    "parse_feed_csv",
    "parse_price",
    "FeedImporter",
    "FeedImportResult",
    "FeedSyncOutcome",
    "download_feed",
]
