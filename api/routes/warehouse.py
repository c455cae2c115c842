"""
Warehouse endpoints: lineage, layer structure and visualization
"""

from typing import Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from catalog.lineage import create_lineage, get_lineage
from catalog.warehouse import get_datasets_by_layer, get_layer_structure, get_visualization, parse_layer
from schemas.api import LineageCreate, LineageResponse
from schemas.catalog import DatasetLineage, DatasetSummary, WarehouseVisualization

router = APIRouter(prefix="/api/warehouse", tags=["Warehouse"])


@router.get("/layers", response_model=Dict[str, List[DatasetSummary]])
async def layer_structure(db: AsyncSession = Depends(get_db)):
    """Datasets grouped by warehouse layer (SOURCE first)"""
    return await get_layer_structure(db)


@router.get("/layers/{layer}", response_model=List[DatasetSummary])
async def layer_datasets(layer: str, db: AsyncSession = Depends(get_db)):
    """Datasets in one layer; the layer is given by name or number"""
    try:
        warehouse_layer = parse_layer(layer)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await get_datasets_by_layer(db, warehouse_layer)


@router.get("/visualization", response_model=WarehouseVisualization)
async def visualization(db: AsyncSession = Depends(get_db)):
    return await get_visualization(db)


@router.post("/lineage", response_model=LineageResponse, status_code=status.HTTP_201_CREATED)
async def add_lineage(body: LineageCreate, db: AsyncSession = Depends(get_db)):
    """Record a lineage edge; the target layer may not be below the source layer"""
    return await create_lineage(
        db,
        source_dataset_id=body.source_dataset_id,
        target_dataset_id=body.target_dataset_id,
        pipeline_id=body.pipeline_id,
        transformation_description=body.transformation_description
    )


@router.get("/lineage/{dataset_id}", response_model=DatasetLineage)
async def dataset_lineage(dataset_id: UUID, db: AsyncSession = Depends(get_db)):
    return await get_lineage(db, dataset_id)
