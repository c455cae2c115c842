"""
Data source status and dataset synchronization
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.utils import utcnow
from models import DataSource, Dataset
from models.base import DataSourceStatus
from schemas.catalog import ConnectionTestResult, DatasetSyncResult
from ingestion.connection_service import ConnectionService
from ingestion.query_engine import QueryEngine

logger = logging.getLogger(__name__)


async def refresh_connection_status(
    session: AsyncSession,
    source: DataSource,
    connection_service: ConnectionService
) -> ConnectionTestResult:
    """Test a data source and record the outcome as its status."""
    result = await connection_service.test_connection(source)

    source.status = DataSourceStatus.ACTIVE if result.success else DataSourceStatus.FAILED
    source.last_tested_at = utcnow()
    await session.commit()

    logger.info(f"Data source '{source.name}' is {source.status.value}")
    return result


async def sync_dataset(
    session: AsyncSession,
    dataset: Dataset,
    connection_service: ConnectionService,
    query_engine: QueryEngine
) -> DatasetSyncResult:
    """
    Refresh a dataset's schema and row count from its source.

    Schema discovery errors propagate; the row count is best-effort (0 on failure).
    """
    columns = await connection_service.discover_schema(dataset.data_source, dataset.table_name)
    row_count = await query_engine.get_row_count(dataset)

    dataset.columns = columns
    dataset.row_count = row_count
    dataset.last_synced_at = utcnow()
    await session.commit()

    logger.info(f"Synced dataset '{dataset.name}': {len(columns)} columns, {row_count} rows")
    return DatasetSyncResult(
        dataset_id=dataset.id,
        last_synced_at=dataset.last_synced_at,
        row_count=row_count,
        columns=len(columns)
    )
