"""
Source connectors: one class per data source type.

Modules:
    base: SourceConnector capability surface, SourceConnection handle, value normalization
    relational: PostgreSQL, MySQL and SQL Server over SQLAlchemy async engines
    mongodb: MongoDB over the PyMongo async client
    registry: ConnectorRegistry (DataSourceType -> connector / target writer)

Usage:
    from ingestion.connectors.registry import default_registry

    connector = default_registry.get(source.type)
    result = await connector.test_connection(source)
"""

__all__ = [
    "SourceConnector",
    "SourceConnection",
    "RelationalConnector",
    "MongoConnector",
    "ConnectorRegistry",
]
