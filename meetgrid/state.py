from typing import Optional
import redis.asyncio as redis
from meetgrid.bus import EventBus
from meetgrid.store import AvailabilityStore

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
event_bus: Optional[EventBus] = None
store: Optional[AvailabilityStore] = None
