"""
Write extracted rows into a pipeline's target dataset (append or upsert by key)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy import MetaData, Table, insert
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from pymongo import ReplaceOne

from core.config import settings
from core.exceptions import DataPlatformError, TargetWriteError, UnimplementedFeatureError
from models.base import WriteMode

logger = logging.getLogger(__name__)


class TargetWriter(ABC):
    """
    Load rows into a target table/collection.

    Ensures:
    - Empty input never opens a connection
    - Upsert is keyed by the target's primary-key columns
    - Rows are written in batches of ETL_BATCH_SIZE
    """

    supports_upsert = True

    def __init__(self, connector, batch_size: Optional[int] = None):
        self.connector = connector
        self.batch_size = batch_size or settings.ETL_BATCH_SIZE

    async def write(
        self,
        source,
        table_name: str,
        rows: List[Dict[str, Any]],
        mode: WriteMode = WriteMode.APPEND,
        key_columns: Optional[Sequence[str]] = None
    ) -> int:
        """
        Write rows to the target.

        Returns:
            Number of rows written

        Raises:
            TargetWriteError: If the write fails or upsert has no key columns
            UnimplementedFeatureError: If the target does not support the mode
        """
        if not rows:
            return 0

        mode = WriteMode(mode)
        key_columns = list(key_columns or [])
        context = {"table_name": table_name, "write_mode": mode.value, "rows": len(rows)}

        if mode == WriteMode.UPSERT and not key_columns:
            raise TargetWriteError("Upsert requires at least one key column", context=context)
        if mode == WriteMode.UPSERT and not self.supports_upsert:
            raise UnimplementedFeatureError(
                f"Upsert is not supported for {self.connector.source_type.value} targets",
                context=context
            )

        try:
            written = await self._write(source, table_name, rows, mode, key_columns)
        except DataPlatformError:
            raise
        except Exception as e:
            raise TargetWriteError(f"Failed to write to '{table_name}': {e}", context=context, original_exception=e)

        logger.info(f"Wrote {written} rows to {table_name} ({mode.value})")
        return written

    @abstractmethod
    async def _write(
        self,
        source,
        table_name: str,
        rows: List[Dict[str, Any]],
        mode: WriteMode,
        key_columns: List[str]
    ) -> int:
        pass

    def batches(self, records: List[Any]):
        for i in range(0, len(records), self.batch_size):
            yield records[i:i + self.batch_size]


class SqlTargetWriter(TargetWriter):
    """
    Relational writer: reflects the target table and drops row keys it lacks.

    Append uses a plain multi-row INSERT; dialect subclasses supply upsert.
    """

    async def _reflect(self, conn, table_name: str) -> Table:
        schema, _, name = table_name.rpartition(".")

        def load(sync_conn):
            return Table(name, MetaData(), schema=schema or None, autoload_with=sync_conn)

        return await conn.run_sync(load)

    def insert_statement(self, table: Table, batch: List[Dict[str, Any]]):
        return insert(table).values(batch)

    def upsert_statement(self, table: Table, batch: List[Dict[str, Any]], key_columns: List[str]):
        raise UnimplementedFeatureError(
            f"Upsert is not supported for {self.connector.source_type.value} targets",
            context={"table_name": table.name}
        )

    async def _write(self, source, table_name, rows, mode, key_columns) -> int:
        written = 0
        async with self.connector.connect(source) as conn:
            table = await self._reflect(conn, table_name)

            present = {key for row in rows for key in row}
            columns = [c.name for c in table.columns if c.name in present]
            if not columns:
                raise TargetWriteError(
                    f"No extracted column matches a column of '{table_name}'",
                    context={"table_name": table_name, "extracted_columns": sorted(present)}
                )

            missing_keys = [k for k in key_columns if k not in columns]
            if mode == WriteMode.UPSERT and missing_keys:
                raise TargetWriteError(
                    f"Key columns missing from extracted rows: {', '.join(missing_keys)}",
                    context={"table_name": table_name}
                )

            records = [{column: row.get(column) for column in columns} for row in rows]

            for batch_number, batch in enumerate(self.batches(records), start=1):
                if mode == WriteMode.UPSERT:
                    stmt = self.upsert_statement(table, batch, key_columns)
                else:
                    stmt = self.insert_statement(table, batch)
                await conn.execute(stmt)
                written += len(batch)
                logger.debug(f"Batch {batch_number}: wrote {len(batch)} rows to {table_name}")

            await conn.commit()

        return written


class PostgresTargetWriter(SqlTargetWriter):

    def upsert_statement(self, table, batch, key_columns):
        stmt = pg_insert(table).values(batch)
        updates = {
            column: stmt.excluded[column]
            for column in batch[0]
            if column not in key_columns
        }
        if not updates:
            return stmt.on_conflict_do_nothing(index_elements=key_columns)
        return stmt.on_conflict_do_update(index_elements=key_columns, set_=updates)


class MySQLTargetWriter(SqlTargetWriter):

    def upsert_statement(self, table, batch, key_columns):
        # MySQL resolves the conflict through the table's primary/unique keys
        stmt = mysql_insert(table).values(batch)
        updates = {
            column: stmt.inserted[column]
            for column in batch[0]
            if column not in key_columns
        }
        if not updates:
            updates = {key_columns[0]: stmt.inserted[key_columns[0]]}
        return stmt.on_duplicate_key_update(updates)


class SQLServerTargetWriter(SqlTargetWriter):
    """Append only; upsert raises UnimplementedFeatureError."""
    supports_upsert = False


class MongoTargetWriter(TargetWriter):
    """insert_many for append, bulk ReplaceOne(upsert=True) by key fields for upsert"""

    async def _write(self, source, table_name, rows, mode, key_columns) -> int:
        written = 0
        async with self.connector.connect(source) as db:
            collection = db[table_name]
            for batch in self.batches(rows):
                if mode == WriteMode.UPSERT:
                    requests = [
                        ReplaceOne({key: row.get(key) for key in key_columns}, dict(row), upsert=True)
                        for row in batch
                    ]
                    await collection.bulk_write(requests, ordered=True)
                else:
                    await collection.insert_many([dict(row) for row in batch], ordered=True)
                written += len(batch)
        return written
