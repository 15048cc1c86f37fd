"""
Event bus for availability change signals, backed by Redis pub/sub.
"""
import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Final

import redis.asyncio as redis

from meetgrid.events import AvailabilityChangedEvent

CHANNEL_AVAILABILITY_PREFIX: Final[str] = "availability:"

logger = logging.getLogger("meetgrid.bus")

ChangeCallback = Callable[[], Awaitable[None]]


class AvailabilitySubscription:
    """Owned handle for one event's change channel.

    The callback is awaited once per published change, with no payload.
    Close the handle (or leave its ``async with`` block) to unsubscribe.
    """

    def __init__(self, pubsub, channel: str, callback: ChangeCallback):
        self._pubsub = pubsub
        self.channel = channel
        self._callback = callback
        self._task: asyncio.Task | None = None
        self.closed = False

    async def start(self) -> None:
        await self._pubsub.subscribe(self.channel)
        self._task = asyncio.create_task(self._listen())
        logger.debug("bus.subscribe channel=%s", self.channel)

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    await self._callback()
                except Exception:
                    logger.exception("bus.callback error channel=%s", self.channel)
        except Exception as e:
            logger.warning("bus.listener failed channel=%s err=%r", self.channel, e)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("bus.listener ended with error channel=%s", self.channel, exc_info=True)
        try:
            await self._pubsub.unsubscribe(self.channel)
        except Exception as e:
            logger.warning("bus.unsubscribe failed channel=%s err=%r", self.channel, e)
        finally:
            if hasattr(self._pubsub, "aclose"):
                await self._pubsub.aclose()
            else:
                await self._pubsub.close()
        logger.debug("bus.unsubscribe channel=%s", self.channel)

    async def __aenter__(self) -> "AvailabilitySubscription":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class EventBus:
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    @staticmethod
    def availability_channel(event_id: str) -> str:
        return f"{CHANNEL_AVAILABILITY_PREFIX}{event_id}"

    async def publish_availability_changed(self, event_id: str, event: AvailabilityChangedEvent) -> None:
        await self.redis_client.publish(self.availability_channel(event_id), json.dumps(event))

    async def subscribe_availability(self, event_id: str, callback: ChangeCallback) -> AvailabilitySubscription:
        subscription = AvailabilitySubscription(
            self.redis_client.pubsub(), self.availability_channel(event_id), callback
        )
        try:
            await subscription.start()
        except Exception:
            await subscription.close()
            raise
        return subscription
