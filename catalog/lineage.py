"""
Lineage between datasets across warehouse layers
"""

from typing import Optional
from uuid import UUID
import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.exceptions import LayerProgressionError, ResourceNotFoundError
from models import DataLineage, Dataset, Pipeline
from schemas.catalog import DatasetLineage, LineageConnection

logger = logging.getLogger(__name__)


async def _get_dataset(session: AsyncSession, dataset_id: UUID, role: str) -> Dataset:
    dataset = await session.get(Dataset, dataset_id)
    if dataset is None:
        raise ResourceNotFoundError(
            f"{role.capitalize()} dataset not found",
            context={"dataset_id": str(dataset_id)}
        )
    return dataset


async def create_lineage(
    session: AsyncSession,
    source_dataset_id: UUID,
    target_dataset_id: UUID,
    pipeline_id: Optional[UUID] = None,
    transformation_description: str = ""
) -> DataLineage:
    """
    Record that data flows from source to target.

    Raises:
        ResourceNotFoundError: If either dataset (or the pipeline) does not exist
        LayerProgressionError: If the target sits in a lower layer than the source
    """
    source = await _get_dataset(session, source_dataset_id, "source")
    target = await _get_dataset(session, target_dataset_id, "target")

    if target.layer < source.layer:
        raise LayerProgressionError(
            f"Invalid layer progression: {source.layer.name} -> {target.layer.name}",
            context={
                "source_dataset_id": str(source.id),
                "target_dataset_id": str(target.id),
            }
        )

    if pipeline_id is not None and await session.get(Pipeline, pipeline_id) is None:
        raise ResourceNotFoundError("Pipeline not found", context={"pipeline_id": str(pipeline_id)})

    lineage = DataLineage(
        source_dataset_id=source.id,
        target_dataset_id=target.id,
        pipeline_id=pipeline_id,
        transformation_description=transformation_description or ""
    )
    session.add(lineage)
    await session.commit()

    logger.info(f"Lineage created: {source.name} ({source.layer.name}) -> {target.name} ({target.layer.name})")
    return lineage


async def get_lineage(session: AsyncSession, dataset_id: UUID) -> DatasetLineage:
    """Direct upstream sources and downstream targets of a dataset."""
    dataset = await _get_dataset(session, dataset_id, "requested")

    result = await session.execute(
        select(DataLineage)
        .where(or_(
            DataLineage.source_dataset_id == dataset_id,
            DataLineage.target_dataset_id == dataset_id
        ))
        .options(
            selectinload(DataLineage.source_dataset),
            selectinload(DataLineage.target_dataset),
            selectinload(DataLineage.pipeline)
        )
        .order_by(DataLineage.created_at)
    )

    upstream, downstream = [], []
    for edge in result.scalars().all():
        pipeline_name = edge.pipeline.name if edge.pipeline else None
        if edge.target_dataset_id == dataset_id:
            upstream.append(_connection(edge.source_dataset, edge, pipeline_name))
        if edge.source_dataset_id == dataset_id:
            downstream.append(_connection(edge.target_dataset, edge, pipeline_name))

    return DatasetLineage(
        id=dataset.id,
        name=dataset.name,
        layer=dataset.layer.name,
        table_type=dataset.table_type.value,
        upstream_sources=upstream,
        downstream_targets=downstream
    )


def _connection(dataset: Dataset, edge: DataLineage, pipeline_name: Optional[str]) -> LineageConnection:
    return LineageConnection(
        dataset_id=dataset.id,
        dataset_name=dataset.name,
        layer=dataset.layer.name,
        pipeline_name=pipeline_name,
        transformation_description=edge.transformation_description
    )
