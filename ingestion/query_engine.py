"""
Query execution against a dataset's source, with normalized results
"""

from typing import Any, Dict, Optional
import logging
import time

from core.config import settings
from schemas.query import DatasetPreview, QueryResult
from ingestion.connectors.registry import ConnectorRegistry, default_registry
from ingestion.query_builder import ExtractionQuery

logger = logging.getLogger(__name__)


class QueryEngine:
    """
    Execute queries, previews and row counts for catalogued datasets.

    The dataset's data_source relationship must be loaded.
    """

    def __init__(self, registry: ConnectorRegistry = None):
        self.registry = registry or default_registry

    async def execute_query(
        self,
        dataset,
        query: str,
        params: Optional[Dict[str, Any]] = None
    ) -> QueryResult:
        """
        Execute SQL (relational) or a JSON filter (document store).

        Raises:
            UnsupportedSourceTypeError: If the source type has no connector
            QueryTimeoutError: If the command timeout elapses
            QueryExecutionError: For any other driver failure
        """
        source = dataset.data_source
        connector = self.registry.get(source.type)

        start = time.perf_counter()
        rowset = await connector.execute(source, dataset.table_name, query, params)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"Query on dataset '{dataset.name}' returned {len(rowset.rows)} rows "
            f"in {elapsed_ms:.1f}ms"
        )

        return QueryResult(
            rows=rowset.rows,
            total_rows=len(rowset.rows),
            execution_time_ms=round(elapsed_ms, 2),
            columns=rowset.columns
        )

    async def execute_extraction(self, dataset, extraction: ExtractionQuery) -> QueryResult:
        return await self.execute_query(dataset, extraction.text, extraction.params or None)

    async def get_preview(self, dataset, limit: Optional[int] = None) -> DatasetPreview:
        limit = limit or settings.PREVIEW_DEFAULT_LIMIT
        source = dataset.data_source
        connector = self.registry.get(source.type)

        rowset = await connector.fetch_preview(source, dataset.table_name, limit)
        total_rows = await self.get_row_count(dataset)

        return DatasetPreview(
            dataset_id=dataset.id,
            rows=rowset.rows,
            schema_columns=dataset.columns,
            rows_shown=len(rowset.rows),
            total_rows=total_rows
        )

    async def get_row_count(self, dataset) -> int:
        """Authoritative row count; any failure is logged and reported as 0."""
        try:
            source = dataset.data_source
            connector = self.registry.get(source.type)
            return await connector.count_rows(source, dataset.table_name)
        except Exception as e:
            logger.warning(f"Row count failed for dataset '{dataset.name}': {e}")
            return 0
