"""
Core utilities and configuration for the data platform.

This package provides foundational components used throughout the platform:

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    utils: Shared helpers (UTC clock)

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import QueryExecutionError, UnsupportedSourceTypeError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "setup_logging",
    "utcnow",
    # Exceptions
    "DataPlatformError",
    "RetryableError",
    "NonRetryableError",
    "ConnectorError",
    "UnsupportedSourceTypeError",
    "ConnectivityError",
    "QueryExecutionError",
    "QueryTimeoutError",
    "PipelineError",
    "PipelineRunNotFoundError",
    "InvalidPipelineTypeError",
    "WatermarkColumnMissingError",
    "UnimplementedFeatureError",
    "LoadError",
    "TargetWriteError",
    "CatalogError",
    "ResourceNotFoundError",
    "LayerProgressionError",
]
