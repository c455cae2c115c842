from sqlalchemy import Column, String, Enum, DateTime, Text, BigInteger, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import uuid
from core.utils import utcnow
from models.base import Base, JSONType, PipelineType, PipelineStatus, PipelineRunStatus, WriteMode


class Pipeline(Base):
    """
    Declared, optionally scheduled data-movement job.

    - source_query may be empty (defaults to a full scan of the source dataset)
    - schedule is a token: "hourly", "daily" or "weekly"
    - last_run_at is updated every time a run is triggered
    """
    __tablename__ = "pipelines"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")

    type = Column(Enum(PipelineType), nullable=False)
    source_query = Column(Text, nullable=False, default="")

    source_dataset_id = Column(Uuid, ForeignKey("datasets.id"), nullable=False, index=True)
    target_dataset_id = Column(Uuid, ForeignKey("datasets.id"), nullable=True)
    write_mode = Column(Enum(WriteMode), nullable=False, default=WriteMode.APPEND)

    schedule = Column(String(100), nullable=False, default="")
    status = Column(Enum(PipelineStatus), nullable=False, default=PipelineStatus.DRAFT, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_run_at = Column(DateTime, nullable=True)
    created_by = Column(String(200), nullable=False, default="")

    source_dataset = relationship("Dataset", foreign_keys=[source_dataset_id])
    target_dataset = relationship("Dataset", foreign_keys=[target_dataset_id])
    runs = relationship(
        "PipelineRun",
        back_populates="pipeline",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Pipeline {self.name} ({self.type.value if self.type else None})>"


class PipelineRun(Base):
    """
    One timed execution attempt of a Pipeline.

    Created in RUNNING by the trigger (API or scheduler); the state machine
    makes exactly one terminal transition. A re-run is always a new record.
    """
    __tablename__ = "pipeline_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pipeline_id = Column(
        Uuid,
        ForeignKey("pipelines.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(Enum(PipelineRunStatus), nullable=False, default=PipelineRunStatus.RUNNING, index=True)
    triggered_by = Column(String(200), nullable=False, default="system")

    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    rows_processed = Column(BigInteger, nullable=False, default=0)
    rows_failed = Column(BigInteger, nullable=False, default=0)

    error_message = Column(Text, nullable=True)
    metrics = Column(JSONType, nullable=False, default=dict)

    pipeline = relationship("Pipeline", back_populates="runs")

    __table_args__ = (
        Index("idx_pipeline_run_watermark", "pipeline_id", "status", "completed_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (PipelineRunStatus.SUCCEEDED, PipelineRunStatus.FAILED)

    @property
    def duration_seconds(self):
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None
