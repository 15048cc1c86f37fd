"""Keeps an event's aggregation current while a viewing session is open.

Each change signal from the bus schedules a re-fetch; refreshes run
concurrently and a refresh that started before the last applied one is
dropped, so the newest read wins.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from meetgrid.aggregation import Aggregation, aggregate
from meetgrid.bus import AvailabilitySubscription, EventBus
from meetgrid.errors import StoreError
from meetgrid.models.availability import PresenceRecord
from meetgrid.models.events import Participant
from meetgrid.store import PresenceStore

logger = logging.getLogger("meetgrid.live")

UpdateCallback = Callable[[Aggregation], Awaitable[None]]


class LiveAggregation:
    def __init__(
        self,
        store: PresenceStore,
        bus: EventBus | None,
        event_id: str,
        participant_filter: Iterable[str] = (),
        on_update: UpdateCallback | None = None,
    ):
        self.store = store
        self.bus = bus
        self.event_id = event_id
        self.participant_filter = frozenset(participant_filter)
        self.on_update = on_update

        self.records: list[PresenceRecord] = []
        self.roster: list[Participant] = []
        self.latest: Aggregation = aggregate([], [], self.participant_filter)

        self._subscription: AvailabilitySubscription | None = None
        self._tasks: set[asyncio.Task] = set()
        self._started = 0
        self._applied = 0

    async def open(self) -> Aggregation:
        if self.bus is not None and self._subscription is None:
            self._subscription = await self.bus.subscribe_availability(self.event_id, self._on_change)
        return await self.refresh()

    async def _on_change(self) -> None:
        task = asyncio.create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch(self) -> tuple[list[PresenceRecord], list[Participant]]:
        try:
            return await asyncio.gather(
                self.store.list_presence_for_event(self.event_id),
                self.store.list_participants(self.event_id),
            )
        except StoreError as e:
            logger.warning("live.fetch failed event=%s err=%s", self.event_id, e.detail)
            return [], []

    async def refresh(self) -> Aggregation:
        """Re-read the event's records and roster, then recompute."""
        self._started += 1
        generation = self._started
        records, roster = await self._fetch()
        if generation < self._applied:
            logger.debug("live.refresh stale generation=%d applied=%d", generation, self._applied)
            return self.latest
        self._applied = generation
        self.records = list(records)
        self.roster = list(roster)
        return await self._recompute()

    async def set_filter(self, participant_ids: Iterable[str]) -> Aggregation:
        """Change the participant subset using the records already fetched."""
        self.participant_filter = frozenset(participant_ids)
        return await self._recompute()

    async def _recompute(self) -> Aggregation:
        self.latest = aggregate(self.records, self.roster, self.participant_filter)
        if self.on_update is not None:
            try:
                await self.on_update(self.latest)
            except Exception:
                logger.exception("live.on_update error event=%s", self.event_id)
        return self.latest

    async def close(self) -> None:
        subscription, self._subscription = self._subscription, None
        try:
            if subscription is not None:
                await subscription.close()
        finally:
            for task in list(self._tasks):
                task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)

    async def __aenter__(self) -> "LiveAggregation":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
