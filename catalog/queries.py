"""
Ad-hoc query execution with a persisted query history
"""

from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.exceptions import ResourceNotFoundError, error_message_of
from core.utils import utcnow
from models import Dataset, QueryExecution
from models.base import QueryStatus
from schemas.query import QueryResult
from ingestion.query_engine import QueryEngine

logger = logging.getLogger(__name__)


async def execute_and_record(
    session: AsyncSession,
    dataset: Dataset,
    query_text: str,
    query_engine: QueryEngine,
    name: Optional[str] = None,
    created_by: str = ""
) -> Tuple[QueryExecution, QueryResult]:
    """
    Execute a query against a dataset and keep it in the query history.

    The record is committed as RUNNING before execution. A failed query is
    recorded as FAILED with its error message and the error propagates.
    """
    record = QueryExecution(
        name=name or "",
        query_text=query_text,
        dataset_id=dataset.id,
        status=QueryStatus.RUNNING,
        created_by=created_by
    )
    session.add(record)
    await session.commit()

    try:
        result = await query_engine.execute_query(dataset, query_text)
    except Exception as e:
        record.status = QueryStatus.FAILED
        record.executed_at = utcnow()
        record.error_message = error_message_of(e)
        await session.commit()
        logger.error(f"Query {record.id} on dataset '{dataset.name}' failed: {record.error_message}")
        raise

    record.status = QueryStatus.COMPLETED
    record.executed_at = utcnow()
    record.rows_returned = result.total_rows
    record.execution_time_ms = result.execution_time_ms
    await session.commit()

    logger.info(f"Query {record.id} executed: {result.total_rows} rows in {result.execution_time_ms}ms")
    return record, result


async def list_queries(
    session: AsyncSession,
    limit: int = 50,
    dataset_id: Optional[UUID] = None
) -> List[QueryExecution]:
    """Most recent queries first, optionally for one dataset."""
    stmt = (
        select(QueryExecution)
        .options(selectinload(QueryExecution.dataset))
        .order_by(QueryExecution.created_at.desc(), QueryExecution.id.desc())
        .limit(limit)
    )
    if dataset_id is not None:
        stmt = stmt.where(QueryExecution.dataset_id == dataset_id)

    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_query(session: AsyncSession, query_id: UUID) -> QueryExecution:
    result = await session.execute(
        select(QueryExecution)
        .where(QueryExecution.id == query_id)
        .options(selectinload(QueryExecution.dataset))
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise ResourceNotFoundError("Query not found", context={"query_id": str(query_id)})
    return record
