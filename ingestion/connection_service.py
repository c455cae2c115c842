"""
Uniform front over the connector registry for connectivity and discovery
"""

from typing import List
import logging

from core.exceptions import UnsupportedSourceTypeError
from schemas.catalog import ConnectionTestResult, DatasetColumn
from ingestion.connectors.registry import ConnectorRegistry, default_registry

logger = logging.getLogger(__name__)


class ConnectionService:
    """
    Connectivity test and discovery for any registered source type.

    test_connection never raises: unsupported types and driver failures are
    reported as a failed ConnectionTestResult. Discovery raises
    UnsupportedSourceTypeError or ConnectivityError.
    """

    def __init__(self, registry: ConnectorRegistry = None):
        self.registry = registry or default_registry

    async def test_connection(self, source) -> ConnectionTestResult:
        try:
            connector = self.registry.get(source.type)
        except UnsupportedSourceTypeError as e:
            logger.warning(f"Connection test for '{source.name}' skipped: {e.message}")
            return ConnectionTestResult(
                success=False,
                message=f"Connection failed: {e.message}",
                error_message=e.message
            )

        return await connector.test_connection(source)

    async def discover_tables(self, source) -> List[str]:
        connector = self.registry.get(source.type)
        tables = await connector.discover_tables(source)
        logger.info(f"Discovered {len(tables)} tables in data source '{source.name}'")
        return tables

    async def discover_schema(self, source, table_name: str) -> List[DatasetColumn]:
        connector = self.registry.get(source.type)
        return await connector.discover_schema(source, table_name)
