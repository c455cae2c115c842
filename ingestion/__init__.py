"""
Pipeline execution components: connectors, query engine, run state machine.

Modules:
    query_builder: Effective extraction query and incremental watermark predicate
    query_engine: Query execution, previews and row counts for catalogued datasets
    connection_service: Connectivity tests and schema discovery for any source type
    runner: Pipeline run state machine (running -> succeeded | failed)
    trigger: Creates a RUNNING run and publishes its execution request
    dispatch: Execution channel (Celery queue or in-process asyncio queue)
    scheduler: APScheduler scan that triggers due scheduled pipelines

Subpackages:
    connectors: One connector per source type, looked up through ConnectorRegistry
    loaders: Target writers (append and upsert-by-key)

Architecture:
    A run is created by the API or the scheduler, committed in RUNNING status
    and handed to a dispatcher. A worker consumes the request:

    1. Extract - Build the effective query (custom, full scan or incremental)
       and execute it against the source dataset
    2. Load - Write the extracted rows to the target dataset, if any
    3. Record - Store rows, metrics and error message with a single commit

    Execution failures never escape the runner; they become a FAILED run.

Usage:
    from ingestion.dispatch import create_dispatcher
    from ingestion.trigger import trigger_pipeline_run

    dispatcher = create_dispatcher(session_factory)
    run = await trigger_pipeline_run(session, pipeline, dispatcher)
"""
