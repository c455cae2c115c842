"""
Custom exceptions for the data platform with structured error context.

This module provides the exception hierarchy used by connectors, the query
engine, the pipeline state machine and the catalog services. Each exception
carries context information for debugging and for the run error record.

Exception Hierarchy:
    DataPlatformError (base)
    ├── ConnectorError
    │   ├── UnsupportedSourceTypeError
    │   └── ConnectivityError
    ├── QueryExecutionError
    │   └── QueryTimeoutError
    ├── PipelineError
    │   ├── PipelineRunNotFoundError
    │   ├── InvalidPipelineTypeError
    │   ├── WatermarkColumnMissingError
    │   └── UnimplementedFeatureError
    ├── LoadError
    │   └── TargetWriteError
    ├── CatalogError
    │   ├── ResourceNotFoundError
    │   └── LayerProgressionError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any

from core.utils import utcnow


class DataPlatformError(Exception):
    """
    Base exception for all platform errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, dataset, run id, etc.)
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

        self.context["error_timestamp"] = self.timestamp.isoformat()

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


def error_message_of(exc: BaseException) -> str:
    """Short, user-facing message for an exception (stored on failed runs)."""
    if isinstance(exc, DataPlatformError):
        return exc.message
    return str(exc) or type(exc).__name__


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(DataPlatformError):
    """
    Mixin for errors that a caller may retry.

    Use this for transient errors like:
    - Network failures reaching an external source
    - Query timeouts
    - Temporary database connection issues
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(DataPlatformError):
    """
    Mixin for errors that must NOT be retried.

    Use this for permanent errors like:
    - Source types without a driver
    - Unimplemented pipeline features
    - Invalid catalog operations
    """
    pass


# ============================================================================
# Connector Errors
# ============================================================================

class ConnectorError(DataPlatformError):
    """Base exception for data source connector failures."""
    pass


class UnsupportedSourceTypeError(NonRetryableError, ConnectorError):
    """
    Raised when an operation targets a source type with no registered driver.

    Context should include:
        - source_type: The data source type
        - operation: Operation that was requested
    """
    pass


class ConnectivityError(RetryableError, ConnectorError):
    """
    Raised when an external source cannot be reached or authenticated.

    Context should include:
        - source_name: Name of the data source
        - source_type: Type of the data source
    """
    pass


# ============================================================================
# Query Errors
# ============================================================================

class QueryExecutionError(DataPlatformError):
    """
    Raised when a query fails against an external source.

    Context should include:
        - dataset_id: Dataset the query ran against
        - source_type: Type of the data source
    """
    pass


class QueryTimeoutError(RetryableError, QueryExecutionError):
    """Raised when a query exceeds the command timeout."""
    pass


# ============================================================================
# Pipeline Errors
# ============================================================================

class PipelineError(DataPlatformError):
    """Base exception for pipeline execution failures."""
    pass


class PipelineRunNotFoundError(NonRetryableError, PipelineError):
    """Raised when an execution request references a run that does not exist."""
    pass


class InvalidPipelineTypeError(NonRetryableError, PipelineError):
    """Raised when a pipeline carries a type the state machine does not know."""
    pass


class WatermarkColumnMissingError(NonRetryableError, PipelineError):
    """
    Raised when an incremental pipeline's source dataset has a known schema
    without the watermark column.
    """
    pass


class UnimplementedFeatureError(NonRetryableError, PipelineError):
    """Raised for declared but unimplemented features (e.g. streaming pipelines)."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(DataPlatformError):
    """Base exception for data loading failures."""
    pass


class TargetWriteError(LoadError):
    """
    Raised when writing extracted rows to a target dataset fails.

    Context should include:
        - target_dataset: Name of the target dataset
        - table_name: Physical table/collection name
        - write_mode: append or upsert
    """
    pass


# ============================================================================
# Catalog Errors
# ============================================================================

class CatalogError(DataPlatformError):
    """Base exception for catalog (dataset/lineage/data source) operations."""
    pass


class ResourceNotFoundError(NonRetryableError, CatalogError):
    """Raised when a referenced catalog object does not exist."""
    pass


class LayerProgressionError(NonRetryableError, CatalogError):
    """Raised when a lineage edge would flow from a higher layer to a lower one."""
    pass
