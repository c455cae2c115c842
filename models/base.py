from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class DataSourceType(str, enum.Enum):
    """External data source types"""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLSERVER = "sqlserver"
    MONGODB = "mongodb"
    REST_API = "rest_api"
    S3_BUCKET = "s3_bucket"
    AZURE_BLOB = "azure_blob"
    KAFKA = "kafka"
    CSV = "csv"
    SALESFORCE = "salesforce"


class DataSourceStatus(str, enum.Enum):
    """Outcome of the most recent connectivity test"""
    TESTING = "testing"
    ACTIVE = "active"
    FAILED = "failed"


class DataWarehouseLayer(enum.IntEnum):
    """Dimensional-modeling stage; lineage must never flow to a lower layer"""
    SOURCE = 0
    OPERATIONAL = 1
    STAGING = 2
    WAREHOUSE = 3
    MART = 4


class TableType(str, enum.Enum):
    """Table role in dimensional modeling"""
    OPERATIONAL = "operational"
    STAGING = "staging"
    FACT = "fact"
    DIMENSION = "dimension"
    AGGREGATE = "aggregate"


class PipelineType(str, enum.Enum):
    """Pipeline extraction strategy"""
    BATCH = "batch"
    INCREMENTAL = "incremental"
    FULL_REFRESH = "full_refresh"
    STREAMING = "streaming"


class PipelineStatus(str, enum.Enum):
    """Pipeline lifecycle status"""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


class PipelineRunStatus(str, enum.Enum):
    """Pipeline run status (running is the only non-terminal state)"""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WriteMode(str, enum.Enum):
    """How extracted rows are written to a target dataset"""
    APPEND = "append"
    UPSERT = "upsert"


class QueryStatus(str, enum.Enum):
    """Ad-hoc query execution status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
