from typing import Optional
from sqlalchemy import Column, String, Enum, DateTime, Text, BigInteger, Float, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import uuid
from core.utils import utcnow
from models.base import Base, QueryStatus


class QueryExecution(Base):
    """
    Query history: one ad-hoc query executed against a dataset.

    Recorded in RUNNING before the query is sent to the source, then
    completed (with row count and timing) or failed (with the error).
    """
    __tablename__ = "queries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, default="")
    query_text = Column(Text, nullable=False)
    dataset_id = Column(
        Uuid,
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(Enum(QueryStatus), nullable=False, default=QueryStatus.RUNNING)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    executed_at = Column(DateTime, nullable=True)
    rows_returned = Column(BigInteger, nullable=True)
    execution_time_ms = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=False, default="")

    dataset = relationship("Dataset")

    __table_args__ = (
        Index("idx_query_created_at", "created_at"),
    )

    @property
    def dataset_name(self) -> Optional[str]:
        # Only read where the dataset relationship was eagerly loaded
        return self.dataset.name if self.dataset is not None else None

    def __repr__(self) -> str:
        return f"<QueryExecution {self.id} ({self.status.value if self.status else None})>"
