"""
Custom exceptions for the enrichment worker with structured error context.

Each exception carries context information (attempt id, article id, url,
status code...) so failures can be logged and recorded on the retry ledger
without losing the original cause.

Exception Hierarchy:
    EnrichmentError (base)
    ├── FetchError
    │   ├── NetworkError
    │   ├── HTTPStatusError
    │   └── ParseError
    ├── ResourceError
    │   ├── ResourceNotFoundError
    │   └── ResourceUpdateError
    ├── LedgerError
    ├── StateTransitionError
    └── AggregateRefreshError
"""

from typing import Optional, Dict, Any
from core.clock import utcnow


class EnrichmentError(Exception):
    """
    Base exception for all enrichment-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (attempt_id, url, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = utcnow()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(EnrichmentError):
    """Base exception for webpage metadata fetch failures."""
    pass


class NetworkError(FetchError):
    """
    Exception raised when the page cannot be reached.

    Context should include:
        - url: The URL that failed
    Covers connection errors, DNS failures, timeouts and redirect loops.
    """
    pass


class HTTPStatusError(FetchError):
    """
    Exception raised when the page answers with a non-2xx status.

    Context should include:
        - url: The URL that failed
        - status_code: HTTP status code
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class ParseError(FetchError):
    """Exception raised when the response body cannot be decoded or parsed."""
    pass


# ============================================================================
# Resource (article) Errors
# ============================================================================

class ResourceError(EnrichmentError):
    """Base exception for article store failures."""
    pass


class ResourceNotFoundError(ResourceError):
    """
    Exception raised when the article being enriched does not exist.

    Context should include:
        - article_id: ID of the missing article
    """
    pass


class ResourceUpdateError(ResourceError):
    """
    Exception raised when writing fetched metadata to the article fails.

    Context should include:
        - article_id: ID of the article being updated
    """
    pass


# ============================================================================
# Ledger Errors
# ============================================================================

class LedgerError(EnrichmentError):
    """
    Exception raised when reading or writing enrichment attempts fails.

    Context should include:
        - operation: Ledger operation (create, list_eligible, update...)
        - attempt_id: ID of the attempt row (if applicable)
    """
    pass


class StateTransitionError(EnrichmentError):
    """
    Exception raised when a transition is requested for an attempt that is
    no longer pending.

    Context should include:
        - attempt_id: ID of the attempt
        - status: Current status of the attempt
    """
    pass


# ============================================================================
# Aggregate Errors
# ============================================================================

class AggregateRefreshError(EnrichmentError):
    """
    Exception raised when refreshing the rating aggregate fails.

    Context should include:
        - view_name: Name of the materialized view
    """
    pass
