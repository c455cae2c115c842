"""
SQLAlchemy ORM models for the platform metadata store.

Models:
    base: Base declarative class and shared enums (DataSourceType, PipelineType, ...)
    data_source: External systems (connection string + configuration)
    dataset: Catalogued tables/collections with schema and warehouse layer
    pipeline: Pipeline definitions and their runs
    lineage: Dataset-to-dataset lineage edges
    query: Ad-hoc query history

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and plain JSON elsewhere.

Usage:
    from models import Pipeline, PipelineRun, Dataset, DataSource
    from models.base import PipelineType, PipelineRunStatus

Relationships:
    - DataSource → Dataset (one-to-many, delete restricted)
    - Pipeline → PipelineRun (one-to-many, cascade delete)
    - Dataset → DataLineage (edges in both directions)
    - Dataset → QueryExecution (one-to-many, cascade delete)
"""

from models.base import Base
from models.data_source import DataSource
from models.dataset import Dataset
from models.pipeline import Pipeline, PipelineRun
from models.lineage import DataLineage
from models.query import QueryExecution

__all__ = [
    "Base",
    "DataSource",
    "Dataset",
    "Pipeline",
    "PipelineRun",
    "DataLineage",
    "QueryExecution",
]
