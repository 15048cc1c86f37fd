"""Dependency injection for FastAPI endpoints.

Exposes the shared Redis client and availability store as FastAPI
dependencies instead of direct access to global state.

Usage in controllers:
    from meetgrid.dependencies import Store

    @router.get("/events/{event_id}")
    async def get_event(event_id: str, store: Store):
        return await store.get_event(event_id)
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends

from meetgrid import state
from meetgrid.errors import ServiceUnavailableError
from meetgrid.store import AvailabilityStore


def get_optional_redis() -> redis.Redis | None:
    return state.redis_client


def get_store() -> AvailabilityStore:
    """Get the availability store.

    Raises:
        ServiceUnavailableError: If the store is not initialized.
    """
    if state.store is None:
        raise ServiceUnavailableError(detail="Availability store not initialized")
    return state.store


OptionalRedis = Annotated[redis.Redis | None, Depends(get_optional_redis)]
Store = Annotated[AvailabilityStore, Depends(get_store)]
