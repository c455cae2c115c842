"""
Data source endpoints: connectivity test and discovery
"""

from typing import List
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_connection_service, get_db
from catalog.datasources import refresh_connection_status
from models import DataSource
from schemas.catalog import ConnectionTestResult, DatasetColumn
from ingestion.connection_service import ConnectionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/datasources", tags=["Data Sources"])


async def _get_source(db: AsyncSession, source_id: UUID) -> DataSource:
    source = await db.get(DataSource, source_id)
    if source is None:
        raise HTTPException(status_code=404, detail=f"Data source {source_id} not found")
    return source


@router.post("/{source_id}/test", response_model=ConnectionTestResult)
async def test_connection(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
    connection_service: ConnectionService = Depends(get_connection_service)
):
    """Test connectivity and record the outcome as the data source status"""
    source = await _get_source(db, source_id)
    return await refresh_connection_status(db, source, connection_service)


@router.get("/{source_id}/tables", response_model=List[str])
async def discover_tables(
    source_id: UUID,
    db: AsyncSession = Depends(get_db),
    connection_service: ConnectionService = Depends(get_connection_service)
):
    source = await _get_source(db, source_id)
    return await connection_service.discover_tables(source)


@router.get("/{source_id}/tables/{table_name}/schema", response_model=List[DatasetColumn])
async def discover_schema(
    source_id: UUID,
    table_name: str,
    db: AsyncSession = Depends(get_db),
    connection_service: ConnectionService = Depends(get_connection_service)
):
    source = await _get_source(db, source_id)
    return await connection_service.discover_schema(source, table_name)
