from typing import List
from sqlalchemy import Column, String, Enum, DateTime, Text, BigInteger, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from core.utils import utcnow
from models.base import Base, JSONType, DataWarehouseLayer, TableType
from schemas.catalog import DatasetColumn


class Dataset(Base):
    """
    A named, schema-described table or collection drawn from a DataSource.

    Created by discovery against a DataSource; schema and row count are
    refreshed by a sync. schema_columns is stored as an ordered JSON list of
    column descriptors (see schemas.catalog.DatasetColumn).
    """
    __tablename__ = "datasets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    data_source_id = Column(
        Uuid,
        ForeignKey("data_sources.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    table_name = Column(String(500), nullable=False)
    schema_columns = Column("schema", JSONType, nullable=False, default=list)

    row_count = Column(BigInteger, nullable=True)
    size_bytes = Column(BigInteger, nullable=True)

    # Warehouse properties
    layer = Column(Enum(DataWarehouseLayer), nullable=False, default=DataWarehouseLayer.SOURCE, index=True)
    table_type = Column(Enum(TableType), nullable=False, default=TableType.OPERATIONAL)
    business_key = Column(String(200), nullable=True)
    grain_description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_synced_at = Column(DateTime, nullable=True)
    created_by = Column(String(200), nullable=False, default="")

    data_source = relationship("DataSource", back_populates="datasets")

    @property
    def columns(self) -> List[DatasetColumn]:
        """Schema as typed column descriptors."""
        return [DatasetColumn(**col) for col in (self.schema_columns or [])]

    @columns.setter
    def columns(self, value: List[DatasetColumn]):
        self.schema_columns = [col.model_dump() for col in value]

    @property
    def primary_key_columns(self) -> List[str]:
        return [col.name for col in self.columns if col.is_primary_key]

    def has_column(self, name: str) -> bool:
        return any(col.name.lower() == name.lower() for col in self.columns)

    def __repr__(self) -> str:
        return f"<Dataset {self.name} ({self.table_name})>"
