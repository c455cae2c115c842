"""
Pydantic schemas for catalog objects: columns, connection tests, lineage
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID


class DatasetColumn(BaseModel):
    """Schema definition for a dataset column"""
    name: str
    data_type: str = ""
    is_nullable: bool = True
    is_primary_key: bool = False
    description: Optional[str] = None


class ConnectionTestResult(BaseModel):
    """Outcome of a connectivity test against a data source"""
    success: bool
    message: str = ""
    details: Optional[str] = Field(None, description="Server version or other connection details")
    error_message: Optional[str] = None
    connection_time_ms: Optional[float] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Connection successful",
                "details": "PostgreSQL 16.2 on x86_64-pc-linux-gnu",
                "error_message": None,
                "connection_time_ms": 41.7
            }
        }


class DatasetSyncResult(BaseModel):
    """Result of refreshing a dataset's schema and row count"""
    success: bool = True
    dataset_id: UUID
    last_synced_at: datetime
    row_count: int
    columns: int


class LineageConnection(BaseModel):
    """One upstream or downstream neighbour of a dataset"""
    dataset_id: UUID
    dataset_name: str
    layer: str
    pipeline_name: Optional[str] = None
    transformation_description: str = ""


class DatasetLineage(BaseModel):
    """A dataset with its direct upstream sources and downstream targets"""
    id: UUID
    name: str
    layer: str
    table_type: str
    upstream_sources: List[LineageConnection] = Field(default_factory=list)
    downstream_targets: List[LineageConnection] = Field(default_factory=list)


# ============================================================================
# Warehouse views
# ============================================================================

class DatasetSummary(BaseModel):
    """A dataset as listed in the warehouse layer views"""
    id: UUID
    name: str
    table_name: str
    layer: str
    table_type: str
    row_count: Optional[int] = None
    data_source_name: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class VisualizationNode(BaseModel):
    id: UUID
    name: str
    layer: str
    table_type: str
    row_count: Optional[int] = None


class VisualizationEdge(BaseModel):
    source: UUID
    target: UUID
    pipeline_name: Optional[str] = None
    description: str = ""


class WarehouseVisualization(BaseModel):
    """Every dataset as a node and every lineage edge between them"""
    nodes: List[VisualizationNode] = Field(default_factory=list)
    edges: List[VisualizationEdge] = Field(default_factory=list)
