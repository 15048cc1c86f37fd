import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import asyncio
from datetime import UTC, datetime

import psycopg
import pytest
from fastapi.testclient import TestClient
import fakeredis.aioredis as fakeredis

from meetgrid import db
from meetgrid.errors import StoreError
import meetgrid.lifespan as lifespan
import meetgrid.main as main


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


class FakeDatabase:
    """In-memory stand-in for the meetgrid.db query functions."""

    def __init__(self):
        self.events = {}
        self.participants = {}
        self.availability = set()
        self.fail = False
        self._ids = 0

    def _next_id(self, prefix):
        self._ids += 1
        return f"{prefix}{self._ids}"

    def _check(self):
        if self.fail:
            raise psycopg.OperationalError("connection refused")

    async def create_event(self, name, creator_name, start_date, end_date, start_time, end_time, password_hash=None):
        self._check()
        now = datetime.now(UTC).isoformat()
        event = {
            "id": self._next_id("ev"),
            "name": name,
            "password_hash": password_hash,
            "password_protected": password_hash is not None,
            "start_date": start_date,
            "end_date": end_date,
            "start_time": start_time,
            "end_time": end_time,
            "created_at": now,
        }
        self.events[event["id"]] = event
        participant = await self.create_participant(event["id"], creator_name, creator=True)
        return dict(event), participant

    async def get_event(self, event_id):
        self._check()
        event = self.events.get(event_id)
        return dict(event) if event else None

    async def create_participant(self, event_id, name, creator=False):
        self._check()
        participant = {
            "id": self._next_id("p"),
            "name": name,
            "event_id": event_id,
            "creator": creator,
            "created_at": datetime.now(UTC).isoformat(),
        }
        self.participants[participant["id"]] = participant
        return dict(participant)

    async def get_participant(self, participant_id):
        self._check()
        participant = self.participants.get(participant_id)
        return dict(participant) if participant else None

    async def list_participants(self, event_id):
        self._check()
        return [dict(p) for p in self.participants.values() if p["event_id"] == event_id]

    async def count_participants(self, event_id):
        return len(await self.list_participants(event_id))

    async def insert_availability(self, event_id, participant_id, slot_date, slot_time):
        self._check()
        key = (event_id, participant_id, slot_date, slot_time)
        if key in self.availability:
            return False
        self.availability.add(key)
        return True

    async def delete_availability(self, event_id, participant_id, slot_date, slot_time):
        self._check()
        key = (event_id, participant_id, slot_date, slot_time)
        if key not in self.availability:
            return False
        self.availability.discard(key)
        return True

    async def list_user_availability(self, event_id, participant_id):
        self._check()
        return sorted((d, t) for e, p, d, t in self.availability if e == event_id and p == participant_id)

    async def list_event_availability(self, event_id):
        self._check()
        return [
            {
                "slot_date": d,
                "slot_time": t,
                "participant_id": p,
                "participant_name": self.participants[p]["name"],
            }
            for e, p, d, t in sorted(self.availability)
            if e == event_id
        ]


_DB_FUNCTIONS = [
    "create_event",
    "get_event",
    "create_participant",
    "get_participant",
    "list_participants",
    "count_participants",
    "insert_availability",
    "delete_availability",
    "list_user_availability",
    "list_event_availability",
]


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeDatabase()
    for name in _DB_FUNCTIONS:
        monkeypatch.setattr(db, name, getattr(fake, name))
    return fake


class FakePresenceStore:
    """Scriptable PresenceStore for controller and live aggregation tests.

    Writes block until ``release()`` when ``hold_writes`` is set, so tests can
    observe the in-flight window.
    """

    def __init__(self, selected=(), records=(), roster=()):
        self.selected = set(selected)
        self.records = list(records)
        self.roster = list(roster)
        self.writes = []
        self.fail_writes = False
        self.fail_reads = False
        self.hold_writes = False
        self._gate = asyncio.Event()

    def release(self):
        self._gate.set()

    async def _write(self, kind, slot):
        self.writes.append((kind, slot))
        if self.hold_writes:
            await self._gate.wait()
        if self.fail_writes:
            raise StoreError(detail="write failed")

    async def record_presence(self, event_id, participant_id, slot):
        await self._write("record", slot)
        self.selected.add(slot)

    async def clear_presence(self, event_id, participant_id, slot):
        await self._write("clear", slot)
        self.selected.discard(slot)

    async def list_presence_for_user(self, event_id, participant_id):
        if self.fail_reads:
            raise StoreError(detail="read failed")
        return set(self.selected)

    async def list_presence_for_event(self, event_id):
        if self.fail_reads:
            raise StoreError(detail="read failed")
        return list(self.records)

    async def list_participants(self, event_id):
        if self.fail_reads:
            raise StoreError(detail="read failed")
        return list(self.roster)

    async def count_participants(self, event_id):
        return len(self.roster)


@pytest.fixture
def client(monkeypatch, fake_db):
    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.FakeRedis(decode_responses=True)
        return _AwaitableRedis(fake)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)

    with TestClient(main.app) as c:
        yield c
