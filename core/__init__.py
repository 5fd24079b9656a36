"""
Core utilities and configuration for the article enrichment worker.

This package provides foundational components used by the background jobs:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory creation
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    clock: Naive-UTC time helper shared by the ledger and the worker

Usage:
    from core.config import settings
    from core.database import create_engine, create_session_factory
    from core.exceptions import FetchError, LedgerError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    session_factory = create_session_factory(create_engine())
    async with session_factory() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "create_engine",
    "create_session_factory",
    "setup_logging",
    "utcnow",
    # Exceptions
    "EnrichmentError",
    "FetchError",
    "NetworkError",
    "HTTPStatusError",
    "ParseError",
    "ResourceError",
    "ResourceNotFoundError",
    "ResourceUpdateError",
    "LedgerError",
    "StateTransitionError",
    "AggregateRefreshError",
]
