"""
Ad-hoc query endpoints and query history
"""

from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_query_engine
from api.routes.datasets import get_dataset_with_source
from catalog.queries import execute_and_record, get_query, list_queries
from schemas.query import ExecuteQueryRequest, ExecuteQueryResponse, QueryExecutionResponse
from ingestion.query_engine import QueryEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/queries", tags=["Queries"])


@router.get("", response_model=List[QueryExecutionResponse])
async def query_history(
    limit: int = Query(50, ge=1, le=500, description="Maximum queries to return"),
    dataset_id: Optional[UUID] = Query(None, description="Only queries against this dataset"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent queries first"""
    return await list_queries(db, limit=limit, dataset_id=dataset_id)


@router.post("/execute", response_model=ExecuteQueryResponse)
async def execute_query(
    body: ExecuteQueryRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    query_engine: QueryEngine = Depends(get_query_engine)
):
    """
    Execute SQL (relational sources) or a JSON filter (MongoDB) against a dataset.

    Every execution is kept in the query history. Failures are returned as
    500 with the underlying driver message.
    """
    request_id = getattr(request.state, "request_id", None)
    dataset = await get_dataset_with_source(db, body.dataset_id)

    logger.info(f"[{request_id}] Executing ad-hoc query on dataset '{dataset.name}'")
    record, result = await execute_and_record(db, dataset, body.query, query_engine, name=body.name)

    return ExecuteQueryResponse(
        dataset_id=dataset.id,
        query_id=record.id,
        request_id=request_id,
        **result.model_dump()
    )


@router.get("/{query_id}", response_model=QueryExecutionResponse)
async def query_detail(query_id: UUID, db: AsyncSession = Depends(get_db)):
    return await get_query(db, query_id)
