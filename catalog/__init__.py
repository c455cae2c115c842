"""
Catalog services: data source status, dataset sync, lineage, warehouse
views and query history.

Modules:
    datasources: Connection status refresh and dataset schema/row-count sync
    lineage: Lineage edges between warehouse layers
    queries: Ad-hoc query execution and query history
    warehouse: Datasets by layer and the lineage graph
"""
