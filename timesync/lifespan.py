"""Application startup and shutdown.

Builds the document store selected by the settings (and the Redis client
behind it for the ``redis`` backend), publishes both in ``timesync.state``
and releases them on shutdown.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis.asyncio as redis
from fastapi import FastAPI
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from timesync import state
from timesync.config import get_settings
from timesync.db.core import DocumentStore, build_document_store

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    document_store: DocumentStore | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool.

    Returns:
        Configured Redis client.
    """
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        health_check_interval=settings.redis.health_check_interval,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        decode_responses=True,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


async def setup_resources() -> LifespanResources:
    """Set up the document store and publish it in global state."""
    settings = get_settings()
    resources = LifespanResources()

    if settings.storage.backend == "redis":
        resources.redis_client = await init_redis()
    resources.document_store = build_document_store(settings, resources.redis_client)
    logger.info(
        "Document store ready backend=%s key=%s",
        resources.document_store.name,
        settings.storage.key,
    )

    state.redis_client = resources.redis_client
    state.document_store = resources.document_store
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Close the document store and clear global state."""
    if resources.document_store is not None:
        try:
            await resources.document_store.close()
        except Exception as e:
            logger.warning("Failed to close document store: %s", e)

    state.redis_client = None
    state.document_store = None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)
