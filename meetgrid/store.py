"""Typed access to events, participants and availability records.

Every storage failure leaves this module as a ``StoreError`` chained to the
underlying psycopg error. Callers on read paths are expected to degrade to
empty results; the availability controller rolls back on write failures.
"""

import hashlib
import hmac
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Protocol

import psycopg
from psycopg import errors as pg_errors

from meetgrid import db
from meetgrid.bus import EventBus
from meetgrid.errors import NotFoundError, StoreError, ValidationError
from meetgrid.grid import SlotCoordinate
from meetgrid.models.availability import PresenceRecord
from meetgrid.models.events import Event, NewEvent, Participant

logger = logging.getLogger("meetgrid.store")


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def password_matches(stored_hash: str | None, submitted: str | None) -> bool:
    """True when no password is set, otherwise exact match of the submitted string."""
    if stored_hash is None:
        return True
    return hmac.compare_digest(stored_hash, hash_password(submitted or ""))


@contextmanager
def _store_errors(operation: str, **context):
    try:
        yield
    except psycopg.Error as e:
        logger.warning("store.%s failed context=%s err=%r", operation, context, e)
        raise StoreError(detail=f"Store operation {operation} failed", operation=operation, **context) from e


class PresenceStore(Protocol):
    """What the availability controller and live aggregation need from storage."""

    async def record_presence(self, event_id: str, participant_id: str, slot: SlotCoordinate) -> None: ...

    async def clear_presence(self, event_id: str, participant_id: str, slot: SlotCoordinate) -> None: ...

    async def list_presence_for_user(self, event_id: str, participant_id: str) -> set[SlotCoordinate]: ...

    async def list_presence_for_event(self, event_id: str) -> list[PresenceRecord]: ...

    async def list_participants(self, event_id: str) -> list[Participant]: ...

    async def count_participants(self, event_id: str) -> int: ...


class AvailabilityStore:
    """PostgreSQL-backed store that announces availability changes on the event bus."""

    def __init__(self, bus: EventBus | None = None):
        self.bus = bus

    async def _publish_change(self, event_id: str, participant_id: str, slot: SlotCoordinate, available: bool) -> None:
        if self.bus is None:
            return
        try:
            await self.bus.publish_availability_changed(
                event_id,
                {
                    "type": "availability_changed",
                    "event_id": event_id,
                    "participant_id": participant_id,
                    "slot": slot.key,
                    "available": available,
                    "timestamp": datetime.now(UTC).isoformat(),
                },
            )
        except Exception as e:
            # The write already succeeded; listeners catch up on the next change.
            logger.warning("store.publish failed event=%s slot=%s err=%r", event_id, slot.key, e)

    async def record_presence(self, event_id: str, participant_id: str, slot: SlotCoordinate) -> None:
        with _store_errors("record_presence", event_id=event_id, participant_id=participant_id, slot=slot.key):
            created = await db.insert_availability(event_id, participant_id, slot.date, slot.time)
        logger.debug("store.record event=%s participant=%s slot=%s created=%s", event_id, participant_id, slot.key, created)
        if created:
            await self._publish_change(event_id, participant_id, slot, True)

    async def clear_presence(self, event_id: str, participant_id: str, slot: SlotCoordinate) -> None:
        with _store_errors("clear_presence", event_id=event_id, participant_id=participant_id, slot=slot.key):
            deleted = await db.delete_availability(event_id, participant_id, slot.date, slot.time)
        logger.debug("store.clear event=%s participant=%s slot=%s deleted=%s", event_id, participant_id, slot.key, deleted)
        if deleted:
            await self._publish_change(event_id, participant_id, slot, False)

    async def list_presence_for_user(self, event_id: str, participant_id: str) -> set[SlotCoordinate]:
        with _store_errors("list_presence_for_user", event_id=event_id, participant_id=participant_id):
            rows = await db.list_user_availability(event_id, participant_id)
        return {SlotCoordinate(d, t) for d, t in rows}

    async def list_presence_for_event(self, event_id: str) -> list[PresenceRecord]:
        with _store_errors("list_presence_for_event", event_id=event_id):
            rows = await db.list_event_availability(event_id)
        return [
            PresenceRecord(
                SlotCoordinate(r["slot_date"], r["slot_time"]),
                r["participant_id"],
                r["participant_name"],
            )
            for r in rows
        ]

    async def count_participants(self, event_id: str) -> int:
        with _store_errors("count_participants", event_id=event_id):
            return await db.count_participants(event_id)

    async def list_participants(self, event_id: str) -> list[Participant]:
        with _store_errors("list_participants", event_id=event_id):
            rows = await db.list_participants(event_id)
        return [Participant(**r) for r in rows]

    async def create_event(self, new_event: NewEvent) -> tuple[Event, Participant]:
        password_hash = hash_password(new_event.password) if new_event.password else None
        with _store_errors("create_event"):
            event_row, participant_row = await db.create_event(
                name=new_event.name,
                creator_name=new_event.creator_name,
                start_date=new_event.start_date,
                end_date=new_event.end_date,
                start_time=new_event.start_time,
                end_time=new_event.end_time,
                password_hash=password_hash,
            )
        return Event(**event_row), Participant(**participant_row)

    async def get_event(self, event_id: str) -> Event | None:
        with _store_errors("get_event", event_id=event_id):
            row = await db.get_event(event_id)
        return Event(**row) if row else None

    async def create_participant(self, event_id: str, name: str, creator: bool = False) -> Participant:
        try:
            with _store_errors("create_participant", event_id=event_id):
                row = await db.create_participant(event_id, name, creator)
        except StoreError as e:
            if isinstance(e.__cause__, pg_errors.ForeignKeyViolation):
                raise NotFoundError(detail="Event not found", resource_type="event", resource_id=event_id) from e
            if isinstance(e.__cause__, pg_errors.UniqueViolation):
                raise ValidationError(detail="This event already has a creator") from e
            raise
        return Participant(**row)

    async def get_participant(self, participant_id: str) -> Participant | None:
        with _store_errors("get_participant", participant_id=participant_id):
            row = await db.get_participant(participant_id)
        return Participant(**row) if row else None

    async def verify_password(self, event_id: str, password: str | None) -> bool:
        with _store_errors("verify_password", event_id=event_id):
            row = await db.get_event(event_id)
        if row is None:
            return False
        return password_matches(row["password_hash"], password)
