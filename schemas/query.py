"""
Pydantic schemas for query execution results
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID
from models.base import QueryStatus
from schemas.catalog import DatasetColumn


class QueryResult(BaseModel):
    """Normalized result of a query against any source type"""
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    total_rows: int = 0
    execution_time_ms: float = 0.0
    columns: List[str] = Field(default_factory=list)


class DatasetPreview(BaseModel):
    """First rows of a dataset plus its authoritative row count"""
    dataset_id: UUID
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    schema_columns: List[DatasetColumn] = Field(default_factory=list, alias="schema")
    rows_shown: int = 0
    total_rows: int = 0

    class Config:
        populate_by_name = True


class ExecuteQueryRequest(BaseModel):
    """Ad-hoc query request"""
    dataset_id: UUID
    query: str = Field(..., min_length=1, description="SQL for relational sources, a JSON filter for document stores")
    name: Optional[str] = None


class ExecuteQueryResponse(QueryResult):
    """Ad-hoc query response"""
    dataset_id: UUID
    query_id: Optional[UUID] = Field(None, description="Query history record of this execution")
    request_id: Optional[str] = None


class QueryExecutionResponse(BaseModel):
    """A query history record"""
    id: UUID
    name: str
    query_text: str
    dataset_id: UUID
    dataset_name: Optional[str] = None
    status: QueryStatus
    created_at: datetime
    executed_at: Optional[datetime] = None
    rows_returned: Optional[int] = None
    execution_time_ms: Optional[float] = None
    error_message: Optional[str] = None
    created_by: str = ""

    class Config:
        from_attributes = True
        use_enum_values = True
