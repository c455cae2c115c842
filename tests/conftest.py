"""
Pytest configuration and fixtures
"""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("EXECUTION_BACKEND", "inprocess")

import sqlite3
from datetime import datetime
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from models import Base, DataSource, Dataset, Pipeline, PipelineRun
from models.base import (
    DataSourceStatus,
    DataSourceType,
    DataWarehouseLayer,
    PipelineRunStatus,
    PipelineStatus,
    PipelineType,
    TableType,
    WriteMode,
)
from schemas.catalog import DatasetColumn
from schemas.messages import PipelineExecutionMessage
from ingestion.connectors.registry import ConnectorRegistry
from ingestion.connectors.relational import RelationalConnector
from ingestion.dispatch import ExecutionDispatcher
from ingestion.loaders.target_writer import SqlTargetWriter
from ingestion.query_engine import QueryEngine


# ============================================================================
# SQLite stand-ins for an external relational source
# ============================================================================

class SqliteConnector(RelationalConnector):
    """Relational connector over aiosqlite, registered in place of PostgreSQL in tests"""
    source_type = DataSourceType.POSTGRESQL
    async_driver = "sqlite+aiosqlite"
    version_query = "SELECT sqlite_version()"
    tables_query = (
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    )
    schema_query = (
        "SELECT name, type, CASE WHEN \"notnull\" = 0 THEN 'YES' ELSE 'NO' END, pk "
        "FROM pragma_table_info(:table_name) ORDER BY cid"
    )


class SqliteTargetWriter(SqlTargetWriter):

    def upsert_statement(self, table, batch, key_columns):
        stmt = sqlite_insert(table).values(batch)
        updates = {column: stmt.excluded[column] for column in batch[0] if column not in key_columns}
        return stmt.on_conflict_do_update(index_elements=key_columns, set_=updates)


class RecordingDispatcher(ExecutionDispatcher):
    """Keeps dispatched messages instead of publishing them"""

    def __init__(self, fail: bool = False):
        self.messages: List[PipelineExecutionMessage] = []
        self.fail = fail

    async def dispatch(self, message: PipelineExecutionMessage) -> None:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.messages.append(message)


@pytest.fixture
def sqlite_connector():
    return SqliteConnector()


@pytest.fixture
def registry(sqlite_connector):
    registry = ConnectorRegistry()
    registry.register(DataSourceType.POSTGRESQL, sqlite_connector, SqliteTargetWriter(sqlite_connector, batch_size=2))
    return registry


@pytest.fixture
def query_engine(registry):
    return QueryEngine(registry)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


# ============================================================================
# External source database (plain sqlite3 file)
# ============================================================================

@pytest.fixture
def source_db_path(tmp_path):
    """Source database with `orders` and `events` tables"""
    path = tmp_path / "source.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            customer TEXT NOT NULL,
            amount NUMERIC,
            updated_at TEXT
        );
        CREATE TABLE events (
            id INTEGER PRIMARY KEY,
            region TEXT NOT NULL,
            payload TEXT,
            updated_at TEXT
        );
        CREATE TABLE stg_orders (
            id INTEGER PRIMARY KEY,
            customer TEXT,
            amount NUMERIC
        );
        """
    )
    conn.executemany(
        "INSERT INTO orders (id, customer, amount, updated_at) VALUES (?, ?, ?, ?)",
        [
            (1, "alice", 10.5, "2024-01-01 09:00:00.000000"),
            (2, "bob", 20.0, "2024-01-02 09:00:00.000000"),
            (3, "carol", 30.25, "2024-01-03 09:00:00.000000"),
        ]
    )
    conn.executemany(
        "INSERT INTO events (id, region, payload, updated_at) VALUES (?, ?, ?, ?)",
        [
            (1, "EU", "a", "2024-01-01 08:00:00.000000"),
            (2, "EU", "b", "2024-01-01 12:00:00.000000"),
            (3, "US", "c", "2024-01-01 13:00:00.000000"),
            (4, "EU", "d", "2024-01-02 08:00:00.000000"),
        ]
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def source_rows(source_db_path):
    """Read rows back from the source database (for assertions)"""
    def read(query: str):
        conn = sqlite3.connect(source_db_path)
        try:
            return conn.execute(query).fetchall()
        finally:
            conn.close()
    return read


# ============================================================================
# Platform metadata database
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'platform.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Catalog factories
# ============================================================================

@pytest_asyncio.fixture
async def data_source(db_session, source_db_path) -> DataSource:
    source = DataSource(
        name="warehouse_source",
        type=DataSourceType.POSTGRESQL,
        connection_string=f"sqlite:///{source_db_path}",
        configuration={},
        status=DataSourceStatus.ACTIVE,
    )
    db_session.add(source)
    await db_session.commit()
    return source


@pytest.fixture
def make_dataset(db_session, data_source):
    async def factory(
        name: str = "orders",
        table_name: str = None,
        columns: List[DatasetColumn] = None,
        layer: DataWarehouseLayer = DataWarehouseLayer.SOURCE,
        table_type: TableType = TableType.OPERATIONAL,
        source: DataSource = None,
    ) -> Dataset:
        dataset = Dataset(
            data_source=source or data_source,
            name=name,
            table_name=table_name or name,
            layer=layer,
            table_type=table_type,
        )
        dataset.columns = columns if columns is not None else []
        db_session.add(dataset)
        await db_session.commit()
        return dataset
    return factory


@pytest.fixture
def make_pipeline(db_session):
    async def factory(
        source_dataset: Dataset,
        type: PipelineType = PipelineType.BATCH,
        source_query: str = "",
        target_dataset: Dataset = None,
        write_mode: WriteMode = WriteMode.APPEND,
        schedule: str = "",
        status: PipelineStatus = PipelineStatus.ACTIVE,
        last_run_at: datetime = None,
        name: str = None,
    ) -> Pipeline:
        pipeline = Pipeline(
            name=name or f"{type.value}_{source_dataset.name}",
            type=type,
            source_query=source_query,
            source_dataset_id=source_dataset.id,
            target_dataset_id=target_dataset.id if target_dataset else None,
            write_mode=write_mode,
            schedule=schedule,
            status=status,
            last_run_at=last_run_at,
        )
        db_session.add(pipeline)
        await db_session.commit()
        return pipeline
    return factory


@pytest.fixture
def make_run(db_session):
    async def factory(
        pipeline: Pipeline,
        status: PipelineRunStatus = PipelineRunStatus.RUNNING,
        started_at: datetime = None,
        completed_at: datetime = None,
        triggered_by: str = "test",
    ) -> PipelineRun:
        run = PipelineRun(
            pipeline_id=pipeline.id,
            status=status,
            triggered_by=triggered_by,
            started_at=started_at or datetime(2024, 1, 1),
            completed_at=completed_at,
        )
        db_session.add(run)
        await db_session.commit()
        return run
    return factory
