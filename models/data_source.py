from sqlalchemy import Column, String, Enum, DateTime, Text, Uuid
from sqlalchemy.orm import relationship
import uuid
from core.utils import utcnow
from models.base import Base, JSONType, DataSourceType, DataSourceStatus


class DataSource(Base):
    """
    External system that datasets are drawn from.

    Design:
    - connection_string is an opaque credential blob: never logged, never
      returned by the API
    - configuration holds free-form string settings (e.g. "Database", "Schema")
    - status reflects only the most recent connectivity test
    """
    __tablename__ = "data_sources"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")

    type = Column(Enum(DataSourceType), nullable=False, index=True)
    connection_string = Column(Text, nullable=False, default="")
    configuration = Column(JSONType, nullable=False, default=dict)

    status = Column(Enum(DataSourceStatus), nullable=False, default=DataSourceStatus.TESTING)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_tested_at = Column(DateTime, nullable=True)
    created_by = Column(String(200), nullable=False, default="")

    # Datasets restrict deletion of their source (FK ON DELETE RESTRICT)
    datasets = relationship("Dataset", back_populates="data_source", passive_deletes="all")

    def __repr__(self) -> str:
        return f"<DataSource {self.name} ({self.type.value if self.type else None})>"
