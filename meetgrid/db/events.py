from datetime import UTC, date, datetime, time
from typing import Any

import psycopg
from psycopg import errors as pg_errors

from meetgrid.db.core import _get_connection, generate_id

_EVENT_COLUMNS = "id, name, password_hash, start_date, end_date, start_time, end_time, created_at"


def _event_row(row) -> dict[str, Any]:
    return {
        "id": row[0],
        "name": row[1],
        "password_hash": row[2],
        "password_protected": row[2] is not None,
        "start_date": row[3],
        "end_date": row[4],
        "start_time": row[5],
        "end_time": row[6],
        "created_at": row[7].astimezone(UTC).isoformat(),
    }


async def create_event(
    name: str,
    creator_name: str,
    start_date: date,
    end_date: date,
    start_time: time,
    end_time: time,
    password_hash: str | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Insert an event together with its creator participant in one transaction."""
    now = datetime.now(UTC)
    async with _get_connection() as conn:
        for _ in range(10):
            event_id = generate_id()
            participant_id = generate_id()
            try:
                async with conn.transaction():
                    await conn.execute(
                        """INSERT INTO events (id, name, password_hash, start_date, end_date, start_time, end_time, created_at)
                           VALUES (%s, %s, %s, %s, %s, %s, %s, %s)""",
                        (event_id, name, password_hash, start_date, end_date, start_time, end_time, now),
                    )
                    await conn.execute(
                        """INSERT INTO participants (id, event_id, name, creator, created_at)
                           VALUES (%s, %s, %s, TRUE, %s)""",
                        (participant_id, event_id, creator_name, now),
                    )
            except pg_errors.UniqueViolation:
                continue
            event = {
                "id": event_id,
                "name": name,
                "password_hash": password_hash,
                "password_protected": password_hash is not None,
                "start_date": start_date,
                "end_date": end_date,
                "start_time": start_time,
                "end_time": end_time,
                "created_at": now.isoformat(),
            }
            participant = {
                "id": participant_id,
                "name": creator_name,
                "event_id": event_id,
                "creator": True,
                "created_at": now.isoformat(),
            }
            return event, participant
        raise psycopg.IntegrityError("Failed to generate unique event ID")


async def get_event(event_id: str) -> dict[str, Any] | None:
    async with _get_connection() as conn:
        rows = await conn.execute(
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE id = %s",
            (event_id,),
        )
        row = await rows.fetchone()
        if not row:
            return None
        return _event_row(row)
