"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models for request/response validation and
for the values passed between platform components:

Schemas:
    catalog: Dataset columns, connection test results, lineage and warehouse views
    query: Query results, dataset previews and query history
    messages: Pipeline execution queue messages
    api: API endpoint request/response schemas

Usage:
    from schemas.catalog import DatasetColumn, ConnectionTestResult
    from schemas.query import QueryResult
    from schemas.messages import PipelineExecutionMessage

Example:
    message = PipelineExecutionMessage(
        pipeline_id=pipeline.id,
        run_id=run.id,
        triggered_by="scheduler"
    )
    payload = message.model_dump(mode="json")
"""

__all__ = [
    "DatasetColumn",
    "ConnectionTestResult",
    "DatasetSyncResult",
    "DatasetLineage",
    "QueryResult",
    "DatasetPreview",
    "PipelineExecutionMessage",
    "PipelineCreate",
    "PipelineRunResponse",
    "HealthCheckResponse",
]
