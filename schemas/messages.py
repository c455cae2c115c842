"""
Messages carried on the pipeline execution queue
"""

from pydantic import BaseModel
from uuid import UUID


class PipelineExecutionMessage(BaseModel):
    """Request to execute an existing, already persisted pipeline run"""
    pipeline_id: UUID
    run_id: UUID
    triggered_by: str = "system"
