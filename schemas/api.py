"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
from datetime import datetime
from uuid import UUID
from models.base import (
    PipelineType,
    PipelineStatus,
    PipelineRunStatus,
    WriteMode,
)

SCHEDULE_TOKENS = ("hourly", "daily", "weekly")


# ============================================================================
# Pipeline Schemas
# ============================================================================

class PipelineCreate(BaseModel):
    """Request body for creating a pipeline"""
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    type: PipelineType
    source_dataset_id: UUID
    target_dataset_id: Optional[UUID] = None
    source_query: str = ""
    schedule: Optional[str] = None
    write_mode: WriteMode = WriteMode.APPEND

    @validator("schedule")
    def validate_schedule(cls, v):
        if v is None or not v.strip():
            return None
        if v.strip().lower() not in SCHEDULE_TOKENS:
            raise ValueError(f"schedule must be one of: {', '.join(SCHEDULE_TOKENS)}")
        return v.strip().lower()


class PipelineResponse(BaseModel):
    """Pipeline definition"""
    id: UUID
    name: str
    description: str
    type: PipelineType
    source_query: str
    source_dataset_id: UUID
    target_dataset_id: Optional[UUID]
    write_mode: WriteMode
    schedule: str
    status: PipelineStatus
    created_at: datetime
    last_run_at: Optional[datetime]

    class Config:
        from_attributes = True
        use_enum_values = True


class PipelineRunResponse(BaseModel):
    """A pipeline run with its metrics"""
    id: UUID
    pipeline_id: UUID
    status: PipelineRunStatus
    triggered_by: str
    started_at: datetime
    completed_at: Optional[datetime]
    rows_processed: int
    rows_failed: int
    error_message: Optional[str]
    metrics: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "id": "6f1c2a3e-8a51-4f7e-9d3b-3c1b2a7e9f10",
                "pipeline_id": "0b7d3f52-1e4a-4c8e-a0d2-5b9c7e6f1a22",
                "status": "succeeded",
                "triggered_by": "scheduler",
                "started_at": "2024-01-15T10:00:00",
                "completed_at": "2024-01-15T10:00:04",
                "rows_processed": 1250,
                "rows_failed": 0,
                "error_message": None,
                "metrics": {
                    "query_execution_time_ms": 812.4,
                    "columns_count": 9,
                    "rows_written": 1250,
                    "target_dataset": "stg_orders"
                }
            }
        }


class PipelineRunSummary(BaseModel):
    """Aggregate run statistics for a pipeline"""
    pipeline_id: UUID
    pipeline_name: str
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    running_runs: int = 0
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[PipelineRunStatus] = None
    avg_duration_seconds: Optional[float] = None

    class Config:
        use_enum_values = True


# ============================================================================
# Lineage Schemas
# ============================================================================

class LineageCreate(BaseModel):
    """Request body for creating a lineage edge"""
    source_dataset_id: UUID
    target_dataset_id: UUID
    pipeline_id: Optional[UUID] = None
    transformation_description: str = ""


class LineageResponse(BaseModel):
    """A persisted lineage edge"""
    id: UUID
    source_dataset_id: UUID
    target_dataset_id: UUID
    pipeline_id: Optional[UUID]
    transformation_description: str
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime
    database_connected: bool
    active_pipelines: int = 0
    running_runs: int = 0
    failed_runs_last_24h: int = 0
    last_failure_at: Optional[datetime] = None
    # Declared last so the validator sees database_connected
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"
        return v
