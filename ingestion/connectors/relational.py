"""
Relational connectors (PostgreSQL, MySQL, SQL Server) on SQLAlchemy async engines
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import asyncio
import logging

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import make_url, URL
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from core.config import settings
from core.exceptions import (
    ConnectivityError,
    DataPlatformError,
    QueryExecutionError,
    QueryTimeoutError,
)
from models.base import DataSourceType
from schemas.catalog import DatasetColumn
from ingestion.connectors.base import RowSet, SourceConnection, SourceConnector, normalize_value
from ingestion.query_builder import ExtractionQuery, WATERMARK_PARAM, add_watermark_predicate

logger = logging.getLogger(__name__)


def bound_statement(query: str, params: Dict[str, Any]):
    """text() with datetime parameters typed so each dialect formats them itself."""
    statement = text(query)
    typed = [bindparam(name, type_=DateTime()) for name, value in params.items() if isinstance(value, datetime)]
    return statement.bindparams(*typed) if typed else statement


class RelationalConnector(SourceConnector):
    """
    Base class for SQL sources.

    Every operation builds its own engine with NullPool and disposes it when
    the connection closes, so nothing is pooled across calls. Subclasses
    supply the async driver and the dialect's catalog queries.
    """

    async_driver: str = None
    version_query: str = None
    tables_query: str = None
    # Must select: name, data type, 'YES'/'NO' nullability, primary-key flag;
    # bound parameter :table_name
    schema_query: str = None

    def engine_url(self, source) -> URL:
        """Connection string as a SQLAlchemy URL on the async driver."""
        url = make_url(source.connection_string)
        if "+" not in url.drivername:
            url = url.set(drivername=self.async_driver)
        return url

    def engine_options(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return {}

    def create_engine(self, source, timeout: Optional[float] = None) -> AsyncEngine:
        return create_async_engine(
            self.engine_url(source),
            poolclass=NullPool,
            **self.engine_options(timeout)
        )

    async def open_connection(self, source, timeout: Optional[float] = None) -> SourceConnection:
        engine = self.create_engine(source, timeout)
        try:
            conn = await engine.connect()
        except Exception:
            await engine.dispose()
            raise

        async def release():
            try:
                await conn.close()
            finally:
                await engine.dispose()

        return SourceConnection(conn, release)

    # ------------------------------------------------------------------
    # Connectivity and discovery
    # ------------------------------------------------------------------

    async def ping(self, source) -> str:
        async with self.connect(source) as conn:
            result = await conn.exec_driver_sql(self.version_query)
            return str(result.scalar())

    async def discover_tables(self, source) -> List[str]:
        try:
            async with self.connect(source) as conn:
                result = await conn.exec_driver_sql(self.tables_query)
                return [row[0] for row in result.fetchall()]
        except Exception as e:
            raise ConnectivityError(
                "Failed to discover tables",
                context={"source_name": source.name, "source_type": self.source_type.value},
                original_exception=e
            )

    async def discover_schema(self, source, table_name: str) -> List[DatasetColumn]:
        try:
            async with self.connect(source) as conn:
                result = await conn.execute(text(self.schema_query), {"table_name": table_name})
                rows = result.fetchall()
        except Exception as e:
            raise ConnectivityError(
                f"Failed to discover schema for table '{table_name}'",
                context={"source_name": source.name, "source_type": self.source_type.value},
                original_exception=e
            )

        return [
            DatasetColumn(
                name=row[0],
                data_type=str(row[1]),
                is_nullable=str(row[2]).upper() == "YES",
                is_primary_key=self.is_primary_key(row[3])
            )
            for row in rows
        ]

    def is_primary_key(self, flag: Any) -> bool:
        return bool(flag)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _fetch(self, conn: AsyncConnection, query: str, params: Optional[Dict[str, Any]]) -> RowSet:
        if params:
            result = await conn.execute(bound_statement(query, params), params)
        else:
            # Raw SQL without binds goes to the driver untouched; no_parameters
            # keeps pyformat drivers (aiomysql) from %-formatting it
            result = await conn.exec_driver_sql(query, execution_options={"no_parameters": True})

        columns = list(result.keys())
        rows = [
            {column: normalize_value(value) for column, value in zip(columns, row)}
            for row in result.fetchall()
        ]
        return RowSet(columns=columns, rows=rows)

    async def execute(
        self,
        source,
        table_name: str,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> RowSet:
        timeout = timeout or settings.QUERY_TIMEOUT_SECONDS
        context = {
            "source_name": source.name,
            "source_type": self.source_type.value,
            "table_name": table_name,
        }

        try:
            async with self.connect(source, timeout=timeout) as conn:
                return await asyncio.wait_for(self._fetch(conn, query, params), timeout=timeout)

        except asyncio.TimeoutError as e:
            raise QueryTimeoutError(
                f"Query exceeded the {timeout:g}s command timeout",
                context=context,
                original_exception=e
            )
        except DataPlatformError:
            raise
        except Exception as e:
            raise QueryExecutionError(f"Query failed: {e}", context=context, original_exception=e)

    def preview_query(self, table_name: str, limit: int) -> str:
        return f"SELECT * FROM {table_name} LIMIT {int(limit)}"

    async def fetch_preview(self, source, table_name: str, limit: int) -> RowSet:
        return await self.execute(source, table_name, self.preview_query(table_name, limit))

    async def count_rows(self, source, table_name: str) -> int:
        rowset = await self.execute(source, table_name, f"SELECT COUNT(*) AS row_count FROM {table_name}")
        if not rowset.rows:
            return 0
        return int(next(iter(rowset.rows[0].values())) or 0)

    def default_query(self, table_name: str) -> str:
        return f"SELECT * FROM {table_name}"

    def with_watermark(self, query: str, column: str, watermark: datetime) -> ExtractionQuery:
        return ExtractionQuery(
            text=add_watermark_predicate(query, column),
            params={WATERMARK_PARAM: watermark}
        )


class PostgresConnector(RelationalConnector):
    source_type = DataSourceType.POSTGRESQL
    async_driver = "postgresql+asyncpg"
    version_query = "SELECT version()"
    tables_query = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = 'public'
          AND table_type = 'BASE TABLE'
        ORDER BY table_name
    """
    schema_query = """
        SELECT
            c.column_name,
            c.data_type,
            c.is_nullable,
            (SELECT COUNT(*) > 0
             FROM information_schema.key_column_usage kcu
             JOIN information_schema.table_constraints tc
               ON kcu.constraint_name = tc.constraint_name
             WHERE tc.constraint_type = 'PRIMARY KEY'
               AND kcu.table_name = c.table_name
               AND kcu.column_name = c.column_name) AS is_primary_key
        FROM information_schema.columns c
        WHERE c.table_name = :table_name
          AND c.table_schema = 'public'
        ORDER BY c.ordinal_position
    """

    def engine_options(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        if timeout:
            return {"connect_args": {"command_timeout": timeout}}
        return {}


class MySQLConnector(RelationalConnector):
    source_type = DataSourceType.MYSQL
    async_driver = "mysql+aiomysql"
    version_query = "SELECT VERSION()"
    tables_query = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = DATABASE()
          AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
    """
    schema_query = """
        SELECT
            COLUMN_NAME,
            DATA_TYPE,
            IS_NULLABLE,
            COLUMN_KEY
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_NAME = :table_name
          AND TABLE_SCHEMA = DATABASE()
        ORDER BY ORDINAL_POSITION
    """

    def is_primary_key(self, flag: Any) -> bool:
        return flag == "PRI"


class SQLServerConnector(RelationalConnector):
    source_type = DataSourceType.SQLSERVER
    async_driver = "mssql+aioodbc"
    version_query = "SELECT @@VERSION"
    tables_query = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
    """
    schema_query = """
        SELECT
            c.COLUMN_NAME,
            c.DATA_TYPE,
            c.IS_NULLABLE,
            CASE WHEN pk.COLUMN_NAME IS NOT NULL THEN 1 ELSE 0 END AS IS_PRIMARY_KEY
        FROM INFORMATION_SCHEMA.COLUMNS c
        LEFT JOIN (
            SELECT ku.TABLE_NAME, ku.COLUMN_NAME
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
            JOIN INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
              ON ku.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
            WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
        ) pk ON c.TABLE_NAME = pk.TABLE_NAME
            AND c.COLUMN_NAME = pk.COLUMN_NAME
        WHERE c.TABLE_NAME = :table_name
        ORDER BY c.ORDINAL_POSITION
    """

    def is_primary_key(self, flag: Any) -> bool:
        return int(flag or 0) == 1

    def preview_query(self, table_name: str, limit: int) -> str:
        return f"SELECT TOP {int(limit)} * FROM {table_name}"
