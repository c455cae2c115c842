"""
Lookup table from data source type to connector and target writer
"""

from typing import Dict, List, Optional
import logging

from core.exceptions import UnsupportedSourceTypeError
from models.base import DataSourceType
from ingestion.connectors.base import SourceConnector
from ingestion.connectors.mongodb import MongoConnector
from ingestion.connectors.relational import MySQLConnector, PostgresConnector, SQLServerConnector
from ingestion.loaders.target_writer import (
    MongoTargetWriter,
    MySQLTargetWriter,
    PostgresTargetWriter,
    SQLServerTargetWriter,
    TargetWriter,
)

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """
    Maps DataSourceType to its connector (and optional target writer).

    Types without a registered connector raise UnsupportedSourceTypeError,
    so adding a source type never touches the call sites.
    """

    def __init__(self):
        self._connectors: Dict[DataSourceType, SourceConnector] = {}
        self._writers: Dict[DataSourceType, TargetWriter] = {}

    def register(
        self,
        source_type: DataSourceType,
        connector: SourceConnector,
        writer: Optional[TargetWriter] = None
    ):
        self._connectors[DataSourceType(source_type)] = connector
        if writer is not None:
            self._writers[DataSourceType(source_type)] = writer
        logger.debug(f"Registered connector {connector!r} for {DataSourceType(source_type).value}")

    def supports(self, source_type) -> bool:
        return source_type in self._connectors

    @property
    def supported_types(self) -> List[DataSourceType]:
        return list(self._connectors)

    def get(self, source_type) -> SourceConnector:
        try:
            return self._connectors[source_type]
        except KeyError:
            raise UnsupportedSourceTypeError(
                f"Data source type {_type_name(source_type)} is not supported",
                context={"source_type": _type_name(source_type), "operation": "connect"}
            )

    def get_writer(self, source_type) -> TargetWriter:
        try:
            return self._writers[source_type]
        except KeyError:
            raise UnsupportedSourceTypeError(
                f"Writing to data source type {_type_name(source_type)} is not supported",
                context={"source_type": _type_name(source_type), "operation": "write"}
            )


def _type_name(source_type) -> str:
    return getattr(source_type, "value", str(source_type))


def build_default_registry() -> ConnectorRegistry:
    """Registry with every source type that ships a driver."""
    registry = ConnectorRegistry()

    postgres = PostgresConnector()
    mysql = MySQLConnector()
    sqlserver = SQLServerConnector()
    mongo = MongoConnector()

    registry.register(DataSourceType.POSTGRESQL, postgres, PostgresTargetWriter(postgres))
    registry.register(DataSourceType.MYSQL, mysql, MySQLTargetWriter(mysql))
    registry.register(DataSourceType.SQLSERVER, sqlserver, SQLServerTargetWriter(sqlserver))
    registry.register(DataSourceType.MONGODB, mongo, MongoTargetWriter(mongo))

    return registry


default_registry = build_default_registry()
