"""
Dataset endpoints: preview and sync
"""

from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from api.dependencies import get_connection_service, get_db, get_query_engine
from catalog.datasources import sync_dataset
from core.config import settings
from models import Dataset
from schemas.catalog import DatasetSyncResult
from schemas.query import DatasetPreview
from ingestion.connection_service import ConnectionService
from ingestion.query_engine import QueryEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/datasets", tags=["Datasets"])


async def get_dataset_with_source(db: AsyncSession, dataset_id: UUID) -> Dataset:
    result = await db.execute(
        select(Dataset)
        .where(Dataset.id == dataset_id)
        .options(selectinload(Dataset.data_source))
    )
    dataset = result.scalar_one_or_none()
    if dataset is None:
        raise HTTPException(status_code=404, detail=f"Dataset {dataset_id} not found")
    return dataset


@router.get("/{dataset_id}/preview", response_model=DatasetPreview, response_model_by_alias=True)
async def preview_dataset(
    dataset_id: UUID,
    limit: int = Query(settings.PREVIEW_DEFAULT_LIMIT, ge=1, le=1000, description="Rows to return"),
    db: AsyncSession = Depends(get_db),
    query_engine: QueryEngine = Depends(get_query_engine)
):
    """First rows of the dataset plus its total row count"""
    dataset = await get_dataset_with_source(db, dataset_id)
    return await query_engine.get_preview(dataset, limit)


@router.post("/{dataset_id}/sync", response_model=DatasetSyncResult)
async def sync(
    dataset_id: UUID,
    db: AsyncSession = Depends(get_db),
    connection_service: ConnectionService = Depends(get_connection_service),
    query_engine: QueryEngine = Depends(get_query_engine)
):
    """Refresh schema and row count from the source"""
    dataset = await get_dataset_with_source(db, dataset_id)
    return await sync_dataset(db, dataset, connection_service, query_engine)
