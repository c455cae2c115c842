"""
FastAPI dependencies
"""

from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from core.database import async_session_maker
from ingestion.connection_service import ConnectionService
from ingestion.dispatch import ExecutionDispatcher, create_dispatcher
from ingestion.query_engine import QueryEngine


async def get_db() -> AsyncIterator[AsyncSession]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


@lru_cache
def get_dispatcher() -> ExecutionDispatcher:
    """Process-wide execution dispatcher for the configured backend"""
    return create_dispatcher(async_session_maker)


@lru_cache
def get_query_engine() -> QueryEngine:
    return QueryEngine()


@lru_cache
def get_connection_service() -> ConnectionService:
    return ConnectionService()
