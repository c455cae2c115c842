"""
Unit tests for target writers
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReplaceOne
from sqlalchemy import Column, Integer, MetaData, String, Table
from sqlalchemy.dialects import mysql, postgresql

from core.exceptions import TargetWriteError, UnimplementedFeatureError
from models.base import DataSourceType, WriteMode
from ingestion.connectors.mongodb import MongoConnector
from ingestion.connectors.relational import MySQLConnector, PostgresConnector, SQLServerConnector
from ingestion.loaders.target_writer import (
    MongoTargetWriter,
    MySQLTargetWriter,
    PostgresTargetWriter,
    SQLServerTargetWriter,
)

ROWS = [
    {"id": 1, "customer": "alice", "amount": 10.5},
    {"id": 2, "customer": "bob", "amount": 20.0},
    {"id": 3, "customer": "carol", "amount": 30.25},
]


def sqlite_source(path):
    return SimpleNamespace(
        name="warehouse",
        type=DataSourceType.POSTGRESQL,
        connection_string=f"sqlite:///{path}",
        configuration={},
    )


def mongo_writer(batch_size=None):
    collection = MagicMock()
    collection.insert_many = AsyncMock()
    collection.bulk_write = AsyncMock()
    db = MagicMock()
    db.__getitem__.return_value = collection
    client = MagicMock()
    client.__getitem__.return_value = db
    client.close = AsyncMock()

    connector = MongoConnector()
    connector.create_client = MagicMock(return_value=client)
    source = SimpleNamespace(name="docs", type=DataSourceType.MONGODB, connection_string="", configuration={"Database": "dw"})
    return MongoTargetWriter(connector, batch_size=batch_size), collection, source


class TestWriteGuards:

    @pytest.mark.asyncio
    async def test_empty_rows_never_connect(self):
        connector = MagicMock()
        writer = SQLServerTargetWriter(connector)
        assert await writer.write(None, "t", [], mode=WriteMode.UPSERT) == 0
        connector.connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_needs_key_columns(self):
        writer, collection, source = mongo_writer()
        with pytest.raises(TargetWriteError):
            await writer.write(source, "orders", ROWS, mode=WriteMode.UPSERT, key_columns=[])
        collection.bulk_write.assert_not_called()

    @pytest.mark.asyncio
    async def test_sqlserver_upsert_unimplemented(self):
        connector = SQLServerConnector()
        connector.open_connection = AsyncMock()
        writer = SQLServerTargetWriter(connector)

        with pytest.raises(UnimplementedFeatureError):
            await writer.write(None, "orders", ROWS, mode=WriteMode.UPSERT, key_columns=["id"])
        connector.open_connection.assert_not_called()

    def test_batches(self):
        writer = SQLServerTargetWriter(SQLServerConnector(), batch_size=2)
        assert [len(b) for b in writer.batches(ROWS)] == [2, 1]


class TestSqlTargetWriter:

    @pytest.mark.asyncio
    async def test_append_in_batches(self, registry, source_db_path, source_rows):
        writer = registry.get_writer(DataSourceType.POSTGRESQL)
        rows = [dict(row, updated_at="ignored") for row in ROWS]

        written = await writer.write(sqlite_source(source_db_path), "stg_orders", rows)

        assert written == 3
        assert source_rows("SELECT id, customer, amount FROM stg_orders ORDER BY id") == [
            (1, "alice", 10.5), (2, "bob", 20), (3, "carol", 30.25)
        ]

    @pytest.mark.asyncio
    async def test_upsert_replaces_by_key(self, registry, source_db_path, source_rows):
        writer = registry.get_writer(DataSourceType.POSTGRESQL)
        source = sqlite_source(source_db_path)
        await writer.write(source, "stg_orders", ROWS)

        changed = [{"id": 2, "customer": "bobby", "amount": 21.0}, {"id": 4, "customer": "dave", "amount": 1.0}]
        written = await writer.write(source, "stg_orders", changed, mode=WriteMode.UPSERT, key_columns=["id"])

        assert written == 2
        assert source_rows("SELECT id, customer FROM stg_orders ORDER BY id") == [
            (1, "alice"), (2, "bobby"), (3, "carol"), (4, "dave")
        ]

    @pytest.mark.asyncio
    async def test_no_matching_columns(self, registry, source_db_path):
        writer = registry.get_writer(DataSourceType.POSTGRESQL)
        with pytest.raises(TargetWriteError):
            await writer.write(sqlite_source(source_db_path), "stg_orders", [{"unrelated": 1}])

    @pytest.mark.asyncio
    async def test_key_column_missing_from_rows(self, registry, source_db_path):
        writer = registry.get_writer(DataSourceType.POSTGRESQL)
        with pytest.raises(TargetWriteError) as exc_info:
            await writer.write(
                sqlite_source(source_db_path), "stg_orders", [{"customer": "x"}],
                mode=WriteMode.UPSERT, key_columns=["id"]
            )
        assert "id" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, registry, source_db_path):
        writer = registry.get_writer(DataSourceType.POSTGRESQL)
        with pytest.raises(TargetWriteError) as exc_info:
            await writer.write(sqlite_source(source_db_path), "missing_table", ROWS)
        assert exc_info.value.message.startswith("Failed to write to 'missing_table'")


class TestDialectUpserts:

    table = Table(
        "orders", MetaData(),
        Column("id", Integer, primary_key=True),
        Column("customer", String),
    )

    def test_postgres_on_conflict(self):
        stmt = PostgresTargetWriter(PostgresConnector()).upsert_statement(
            self.table, [{"id": 1, "customer": "a"}], ["id"]
        )
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (id) DO UPDATE SET customer = excluded.customer" in sql

    def test_postgres_keys_only_does_nothing(self):
        stmt = PostgresTargetWriter(PostgresConnector()).upsert_statement(self.table, [{"id": 1}], ["id"])
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (id) DO NOTHING" in sql

    def test_mysql_on_duplicate_key(self):
        stmt = MySQLTargetWriter(MySQLConnector()).upsert_statement(
            self.table, [{"id": 1, "customer": "a"}], ["id"]
        )
        sql = str(stmt.compile(dialect=mysql.dialect()))
        assert "ON DUPLICATE KEY UPDATE" in sql
        assert "customer" in sql.split("ON DUPLICATE KEY UPDATE")[1]


class TestMongoTargetWriter:

    @pytest.mark.asyncio
    async def test_append_uses_insert_many(self):
        writer, collection, source = mongo_writer(batch_size=2)

        written = await writer.write(source, "orders", ROWS)

        assert written == 3
        assert collection.insert_many.await_count == 2
        first_batch = collection.insert_many.await_args_list[0].args[0]
        assert [doc["id"] for doc in first_batch] == [1, 2]

    @pytest.mark.asyncio
    async def test_upsert_uses_replace_one(self):
        writer, collection, source = mongo_writer()

        written = await writer.write(source, "orders", ROWS[:2], mode=WriteMode.UPSERT, key_columns=["id"])

        assert written == 2
        requests = collection.bulk_write.await_args.args[0]
        assert requests == [
            ReplaceOne({"id": 1}, ROWS[0], upsert=True),
            ReplaceOne({"id": 2}, ROWS[1], upsert=True),
        ]

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self):
        writer, collection, source = mongo_writer()
        collection.insert_many.side_effect = RuntimeError("duplicate key")

        with pytest.raises(TargetWriteError):
            await writer.write(source, "orders", ROWS)
