"""
MongoDB connector on the PyMongo async client.

Queries are JSON filter documents in MongoDB extended JSON; results are
capped at DOCUMENT_QUERY_LIMIT documents and flattened into plain values.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from bson import ObjectId, json_util
from bson.decimal128 import Decimal128
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from core.config import settings
from core.exceptions import ConnectivityError, DataPlatformError, QueryExecutionError
from models.base import DataSourceType
from schemas.catalog import DatasetColumn
from ingestion.connectors.base import RowSet, SourceConnection, SourceConnector
from ingestion.query_builder import ExtractionQuery

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "test"


def normalize_bson_value(value: Any) -> Any:
    """Flatten a BSON value (recursively) into JSON-friendly Python values."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, Decimal128):
        return float(value.to_decimal())
    if isinstance(value, dict):
        return {key: normalize_bson_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_bson_value(item) for item in value]
    return str(value)


def bson_type_name(value: Any) -> str:
    """BSON type name of a decoded value, as reported by schema discovery."""
    if value is None:
        return "Null"
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Int32" if -2**31 <= value < 2**31 else "Int64"
    if isinstance(value, float):
        return "Double"
    if isinstance(value, str):
        return "String"
    if isinstance(value, datetime):
        return "DateTime"
    if isinstance(value, ObjectId):
        return "ObjectId"
    if isinstance(value, Decimal128):
        return "Decimal128"
    if isinstance(value, dict):
        return "Document"
    if isinstance(value, list):
        return "Array"
    return type(value).__name__


def documents_to_rowset(documents: List[Dict[str, Any]]) -> RowSet:
    columns: List[str] = []
    rows = []
    for document in documents:
        row = {key: normalize_bson_value(value) for key, value in document.items()}
        for key in row:
            if key not in columns:
                columns.append(key)
        rows.append(row)
    return RowSet(columns=columns, rows=rows)


def parse_filter(query: Optional[str]) -> Dict[str, Any]:
    """Parse an extended-JSON filter; blank or {} matches every document."""
    if not query or not query.strip() or query.strip() == "{}":
        return {}
    parsed = json_util.loads(query)
    if not isinstance(parsed, dict):
        raise QueryExecutionError(
            "Document filter must be a JSON object",
            context={"filter_type": type(parsed).__name__}
        )
    return parsed


class MongoConnector(SourceConnector):
    """
    MongoDB connector.

    Database name resolution: configuration["Database"], then the
    connection string's default database, then "test".
    """

    source_type = DataSourceType.MONGODB

    def create_client(self, source) -> AsyncMongoClient:
        return AsyncMongoClient(source.connection_string)

    def database_for(self, client: AsyncMongoClient, source) -> AsyncDatabase:
        configured = (source.configuration or {}).get("Database")
        if configured:
            return client[configured]
        return client.get_default_database(default=DEFAULT_DATABASE)

    async def open_connection(self, source, timeout: Optional[float] = None) -> SourceConnection:
        client = self.create_client(source)
        return SourceConnection(self.database_for(client, source), client.close)

    async def ping(self, source) -> str:
        async with self.connect(source) as db:
            await db.list_collection_names()
        return "MongoDB connection verified"

    async def discover_tables(self, source) -> List[str]:
        try:
            async with self.connect(source) as db:
                names = await db.list_collection_names()
        except Exception as e:
            raise ConnectivityError(
                "Failed to list collections",
                context={"source_name": source.name, "source_type": self.source_type.value},
                original_exception=e
            )
        return sorted(names)

    async def discover_schema(self, source, table_name: str) -> List[DatasetColumn]:
        """Infer columns from the first document (best-effort; every field nullable)."""
        try:
            async with self.connect(source) as db:
                sample = await db[table_name].find_one({})
        except Exception as e:
            raise ConnectivityError(
                f"Failed to sample collection '{table_name}'",
                context={"source_name": source.name, "source_type": self.source_type.value},
                original_exception=e
            )

        if not sample:
            return []

        return [
            DatasetColumn(
                name=name,
                data_type=bson_type_name(value),
                is_nullable=True,
                is_primary_key=name == "_id"
            )
            for name, value in sample.items()
        ]

    async def _find(self, source, table_name: str, filter_doc: Dict[str, Any], limit: int) -> RowSet:
        context = {
            "source_name": source.name,
            "source_type": self.source_type.value,
            "table_name": table_name,
        }
        try:
            async with self.connect(source) as db:
                cursor = db[table_name].find(filter_doc).limit(limit)
                documents = await cursor.to_list(length=None)
        except DataPlatformError:
            raise
        except Exception as e:
            raise QueryExecutionError(f"Query failed: {e}", context=context, original_exception=e)
        return documents_to_rowset(documents)

    async def execute(
        self,
        source,
        table_name: str,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> RowSet:
        try:
            filter_doc = parse_filter(query)
        except DataPlatformError:
            raise
        except Exception as e:
            raise QueryExecutionError(
                f"Invalid document filter: {e}",
                context={"table_name": table_name},
                original_exception=e
            )
        return await self._find(source, table_name, filter_doc, settings.DOCUMENT_QUERY_LIMIT)

    async def fetch_preview(self, source, table_name: str, limit: int) -> RowSet:
        return await self._find(source, table_name, {}, int(limit))

    async def count_rows(self, source, table_name: str) -> int:
        async with self.connect(source) as db:
            return int(await db[table_name].count_documents({}))

    def default_query(self, table_name: str) -> str:
        return "{}"

    def with_watermark(self, query: str, column: str, watermark: datetime) -> ExtractionQuery:
        condition = {column: {"$gt": watermark}}
        base = parse_filter(query)
        merged = {"$and": [base, condition]} if base else condition
        return ExtractionQuery(text=json_util.dumps(merged))
