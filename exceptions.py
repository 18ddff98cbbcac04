"""
Custom exception hierarchy for the product search backend.

All exceptions inherit from ProductSearchError so route handlers can catch
and serialize them uniformly.

Exception Hierarchy:
    ProductSearchError (base)
    ├── ValidationError
    ├── ResourceNotFoundError
    ├── ConfigurationError
    ├── ExternalServiceError
    │   ├── SearchProviderError
    │   │   └── ProviderTimeoutError
    │   ├── RateLimitError
    │   └── SearchIndexError
    └── FeedImportError
        ├── EmptyFeedError
        └── MissingColumnsError

Usage:
    from exceptions import SearchProviderError, MissingColumnsError

    raise SearchProviderError("Bol.com API error: 500", provider="bolcom")

    try:
        parse_feed_csv(text)
    except MissingColumnsError as e:
        logger.error(f"Feed rejected: {e}")
"""

from typing import Any, Dict, List, Optional, Sequence


class ProductSearchError(Exception):
    """
    Base exception for all product search errors.

    Attributes:
        message: Human-readable error message
        detail: Optional dict with additional error context
        status_code: Suggested HTTP status code (for API errors)
    """

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for JSON serialization."""
        result = {
            "error": self.__class__.__name__,
            "message": self.message,
        }
        if self.detail:
            result["detail"] = self.detail
        return result


class ValidationError(ProductSearchError):
    """
    Raised when request input is invalid.

    Examples:
        raise ValidationError("Search query is required")
        raise ValidationError("Invalid URL format", detail={"url": url})
    """

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, detail=detail, status_code=400)


class ResourceNotFoundError(ProductSearchError):
    """
    Raised when a requested resource doesn't exist.

    Examples:
        raise ResourceNotFoundError("Provider not found", detail={"provider_id": "awin_fnac"})
    """

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, detail=detail, status_code=404)


class ConfigurationError(ProductSearchError):
    """
    Raised when a provider is disabled or missing credentials.

    The registry reports this as a diagnostic instead of raising it; clients
    and importers raise it when asked to do work they are not set up for.
    """

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, detail=detail, status_code=503)


class ExternalServiceError(ProductSearchError):
    """
    Base exception for external service failures.
    """

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Dict[str, Any]] = None,
        service_name: Optional[str] = None,
        status_code: int = 502,
    ):
        if service_name and detail is None:
            detail = {"service": service_name}
        elif service_name and detail:
            detail["service"] = service_name

        super().__init__(message, detail=detail, status_code=status_code)


class SearchProviderError(ExternalServiceError):
    """
    Raised when a search provider call fails.

    Examples:
        raise SearchProviderError("Bol.com API error: 500", provider="bolcom")
    """

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Dict[str, Any]] = None,
        provider: Optional[str] = None,
    ):
        if provider and detail is None:
            detail = {"provider": provider}
        elif provider and detail:
            detail["provider"] = provider

        super().__init__(message, detail=detail, service_name="search_provider")
        self.provider = provider


class ProviderTimeoutError(SearchProviderError):
    """Raised when a provider does not answer within its time budget."""


class RateLimitError(ExternalServiceError):
    """
    Raised when an upstream API rate limit is exceeded.

    Examples:
        raise RateLimitError("Rate limit exceeded. Please try again later.")
        raise RateLimitError("Rate limit exceeded", retry_after=60)
    """

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Dict[str, Any]] = None,
        retry_after: Optional[int] = None,
    ):
        if retry_after and detail is None:
            detail = {"retry_after": retry_after}
        elif retry_after and detail:
            detail["retry_after"] = retry_after

        super().__init__(message, detail=detail, status_code=429)


class SearchIndexError(ExternalServiceError):
    """Raised when the full-text search index rejects a request."""

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, detail=detail, service_name="search_index")


class FeedImportError(ProductSearchError):
    """
    Raised when a catalog feed cannot be imported at all.

    Row-level problems are not raised; they are collected as RowParseError
    values on the parse result.
    """

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, detail=detail, status_code=400)


class EmptyFeedError(FeedImportError):
    """Raised when a feed has no header or no data rows."""


class MissingColumnsError(FeedImportError):
    """
    Raised when the header row lacks a column for a required field.

    Attributes:
        missing: Required field names without a mapped column
        headers: Header names found in the feed
    """

    def __init__(self, missing: Sequence[str], headers: Sequence[str]):
        self.missing: List[str] = list(missing)
        self.headers: List[str] = list(headers)
        message = (
            f"CSV is missing required columns: {', '.join(self.missing)}. "
            f"Found headers: {', '.join(self.headers[:10])}..."
        )
        super().__init__(message, detail={"missing": self.missing})
