"""
FastAPI application initialization
"""

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_dispatcher
from api.middleware import RequestContextMiddleware
from api.routes import datasets, datasources, health, pipelines, queries, warehouse
from core.config import settings
from core.database import async_session_maker
from core.exceptions import (
    DataPlatformError,
    LayerProgressionError,
    ResourceNotFoundError,
    UnsupportedSourceTypeError,
)
from core.logging import setup_logging
from ingestion.dispatch import InProcessDispatcher
from ingestion.scheduler import PipelineScheduler

# Configure logging
setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Data Platform API",
    description="Data sources, datasets, pipelines and lineage",
    version="1.0.0"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(pipelines.router)
app.include_router(datasources.router)
app.include_router(datasets.router)
app.include_router(queries.router)
app.include_router(warehouse.router)


# ============================================================================
# Error handlers
# ============================================================================

def _error_response(status_code: int, exc: DataPlatformError, request: Request) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content={
            "message": exc.message,
            "error": exc.__class__.__name__,
            "request_id": request_id,
        }
    )


@app.exception_handler(ResourceNotFoundError)
async def not_found_handler(request: Request, exc: ResourceNotFoundError):
    return _error_response(404, exc, request)


@app.exception_handler(LayerProgressionError)
@app.exception_handler(UnsupportedSourceTypeError)
async def bad_request_handler(request: Request, exc: DataPlatformError):
    return _error_response(400, exc, request)


@app.exception_handler(DataPlatformError)
async def platform_error_handler(request: Request, exc: DataPlatformError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return _error_response(500, exc, request)


# ============================================================================
# Lifecycle
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Data Platform API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Execution backend: {settings.EXECUTION_BACKEND}")

    dispatcher = get_dispatcher()
    if isinstance(dispatcher, InProcessDispatcher):
        app.state.consumer_task = asyncio.create_task(dispatcher.run_forever())

    if settings.SCHEDULER_ENABLED:
        app.state.scheduler = PipelineScheduler(async_session_maker, dispatcher)
        app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Data Platform API")

    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()

    consumer_task = getattr(app.state, "consumer_task", None)
    if consumer_task is not None:
        consumer_task.cancel()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Data Platform API",
        "version": "1.0.0",
        "health": "/health",
        "endpoints": {
            "pipelines": "/api/pipelines",
            "datasources": "/api/datasources",
            "datasets": "/api/datasets",
            "queries": "/api/queries",
            "execute_query": "/api/queries/execute",
            "lineage": "/api/warehouse/lineage",
            "warehouse_layers": "/api/warehouse/layers",
            "warehouse_visualization": "/api/warehouse/visualization"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
