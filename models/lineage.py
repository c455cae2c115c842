from sqlalchemy import Column, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import uuid
from core.utils import utcnow
from models.base import Base


class DataLineage(Base):
    """
    Directed edge: data flows from source dataset into target dataset,
    optionally via a named pipeline. target.layer >= source.layer is checked
    by catalog.lineage before the edge is persisted.
    """
    __tablename__ = "data_lineages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_dataset_id = Column(Uuid, ForeignKey("datasets.id", ondelete="CASCADE"), nullable=False)
    target_dataset_id = Column(Uuid, ForeignKey("datasets.id", ondelete="CASCADE"), nullable=False)
    pipeline_id = Column(Uuid, ForeignKey("pipelines.id", ondelete="SET NULL"), nullable=True)
    transformation_description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    source_dataset = relationship("Dataset", foreign_keys=[source_dataset_id])
    target_dataset = relationship("Dataset", foreign_keys=[target_dataset_id])
    pipeline = relationship("Pipeline")

    __table_args__ = (
        Index("idx_lineage_source", "source_dataset_id"),
        Index("idx_lineage_target", "target_dataset_id"),
    )
