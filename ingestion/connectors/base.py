"""
Abstract connector with the capability surface shared by every source type
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, NamedTuple, Optional
import logging
import time
import uuid

from models.base import DataSourceType
from schemas.catalog import ConnectionTestResult, DatasetColumn
from ingestion.query_builder import ExtractionQuery

logger = logging.getLogger(__name__)


class RowSet(NamedTuple):
    """Rows returned by a connector, already normalized to plain values"""
    columns: List[str]
    rows: List[Dict[str, Any]]


def normalize_value(value: Any) -> Any:
    """Convert driver-specific scalars into null-safe plain values."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return value


class SourceConnection:
    """
    Live handle to an external source.

    The caller owns the handle and must call close(); SourceConnector.connect()
    does that automatically.
    """

    def __init__(self, handle: Any, release: Callable[[], Awaitable[None]]):
        self.handle = handle
        self._release = release
        self.closed = False

    async def close(self):
        if self.closed:
            return
        self.closed = True
        await self._release()


class SourceConnector(ABC):
    """
    Abstract base class for all source connectors.

    Responsibilities:
    - Connectivity tests (never raise, always close the connection)
    - Table/collection discovery and column schema introspection
    - Query execution with results normalized to plain values
    - Dialect-specific query shapes (default scan, preview, watermark)
    """

    source_type: DataSourceType = None

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @abstractmethod
    async def open_connection(self, source, timeout: Optional[float] = None) -> SourceConnection:
        """Open a live connection; the caller is responsible for closing it."""
        pass

    @asynccontextmanager
    async def connect(self, source, timeout: Optional[float] = None) -> AsyncIterator[Any]:
        """Scoped connection: yields the driver handle and always closes it."""
        connection = await self.open_connection(source, timeout=timeout)
        try:
            yield connection.handle
        finally:
            await connection.close()

    @abstractmethod
    async def ping(self, source) -> str:
        """Issue a trivial query and return server details (e.g. version)."""
        pass

    async def test_connection(self, source) -> ConnectionTestResult:
        """
        Test connectivity to a data source.

        Returns:
            ConnectionTestResult; failures are reported with success=False
            and the driver message, never raised.
        """
        start = time.perf_counter()
        try:
            details = await self.ping(source)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"Connection test failed for data source '{source.name}': {e}")
            return ConnectionTestResult(
                success=False,
                message=f"Connection failed: {e}",
                error_message=str(e),
                connection_time_ms=round(elapsed_ms, 2)
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Connection test succeeded for data source '{source.name}' in {elapsed_ms:.1f}ms")
        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            details=details,
            connection_time_ms=round(elapsed_ms, 2)
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @abstractmethod
    async def discover_tables(self, source) -> List[str]:
        pass

    @abstractmethod
    async def discover_schema(self, source, table_name: str) -> List[DatasetColumn]:
        pass

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    async def execute(
        self,
        source,
        table_name: str,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> RowSet:
        """
        Execute a query against the source.

        Raises:
            QueryTimeoutError: If the command timeout elapses
            QueryExecutionError: For any other driver failure
        """
        pass

    @abstractmethod
    async def fetch_preview(self, source, table_name: str, limit: int) -> RowSet:
        pass

    @abstractmethod
    async def count_rows(self, source, table_name: str) -> int:
        pass

    @abstractmethod
    def default_query(self, table_name: str) -> str:
        """Query that scans the whole table/collection."""
        pass

    @abstractmethod
    def with_watermark(self, query: str, column: str, watermark: datetime) -> ExtractionQuery:
        """Restrict a query to rows whose column is strictly after the watermark."""
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.source_type.value if self.source_type else None}>"
