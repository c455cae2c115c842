"""
Warehouse views: datasets grouped by layer and the lineage graph
"""

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models import DataLineage, Dataset
from models.base import DataWarehouseLayer
from schemas.catalog import DatasetSummary, VisualizationEdge, VisualizationNode, WarehouseVisualization


def parse_layer(value: str) -> DataWarehouseLayer:
    """
    Layer by name (case-insensitive) or by its numeric value.

    Raises:
        ValueError: If the value names no layer
    """
    token = str(value).strip()
    try:
        if token.isdigit():
            return DataWarehouseLayer(int(token))
        return DataWarehouseLayer[token.upper()]
    except (KeyError, ValueError):
        names = ", ".join(layer.name for layer in DataWarehouseLayer)
        raise ValueError(f"Unknown warehouse layer '{value}' (expected one of {names})")


async def _datasets(session: AsyncSession, layer: Optional[DataWarehouseLayer] = None) -> List[Dataset]:
    stmt = select(Dataset).options(selectinload(Dataset.data_source))
    if layer is not None:
        stmt = stmt.where(Dataset.layer == layer)

    result = await session.execute(stmt)
    # Layer is stored by enum name; sort by value
    return sorted(result.scalars().all(), key=lambda d: (d.layer, d.name))


def _summary(dataset: Dataset) -> DatasetSummary:
    return DatasetSummary(
        id=dataset.id,
        name=dataset.name,
        table_name=dataset.table_name,
        layer=dataset.layer.name,
        table_type=dataset.table_type.value,
        row_count=dataset.row_count,
        data_source_name=dataset.data_source.name if dataset.data_source else None,
        last_synced_at=dataset.last_synced_at
    )


async def get_layer_structure(session: AsyncSession) -> Dict[str, List[DatasetSummary]]:
    """Datasets grouped by layer name, lowest layer first; empty layers are omitted."""
    structure: Dict[str, List[DatasetSummary]] = {}
    for dataset in await _datasets(session):
        structure.setdefault(dataset.layer.name, []).append(_summary(dataset))
    return structure


async def get_datasets_by_layer(session: AsyncSession, layer: DataWarehouseLayer) -> List[DatasetSummary]:
    return [_summary(dataset) for dataset in await _datasets(session, layer)]


async def get_visualization(session: AsyncSession) -> WarehouseVisualization:
    """Every dataset as a node and every lineage edge, for drawing the warehouse."""
    datasets = await _datasets(session)
    result = await session.execute(
        select(DataLineage)
        .options(selectinload(DataLineage.pipeline))
        .order_by(DataLineage.created_at)
    )

    return WarehouseVisualization(
        nodes=[
            VisualizationNode(
                id=dataset.id,
                name=dataset.name,
                layer=dataset.layer.name,
                table_type=dataset.table_type.value,
                row_count=dataset.row_count
            )
            for dataset in datasets
        ],
        edges=[
            VisualizationEdge(
                source=edge.source_dataset_id,
                target=edge.target_dataset_id,
                pipeline_name=edge.pipeline.name if edge.pipeline else None,
                description=edge.transformation_description
            )
            for edge in result.scalars().all()
        ]
    )
