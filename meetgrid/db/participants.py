from datetime import UTC, datetime
from typing import Any

from meetgrid.db.core import _get_connection, generate_id


def _participant_row(row) -> dict[str, Any]:
    return {
        "id": row[0],
        "name": row[1],
        "event_id": row[2],
        "creator": row[3],
        "created_at": row[4].astimezone(UTC).isoformat(),
    }


async def create_participant(event_id: str, name: str, creator: bool = False) -> dict[str, Any]:
    now = datetime.now(UTC)
    participant_id = generate_id()
    async with _get_connection() as conn:
        await conn.execute(
            """INSERT INTO participants (id, event_id, name, creator, created_at)
               VALUES (%s, %s, %s, %s, %s)""",
            (participant_id, event_id, name, creator, now),
        )
    return {
        "id": participant_id,
        "name": name,
        "event_id": event_id,
        "creator": creator,
        "created_at": now.isoformat(),
    }


async def get_participant(participant_id: str) -> dict[str, Any] | None:
    async with _get_connection() as conn:
        row = await (
            await conn.execute(
                "SELECT id, name, event_id, creator, created_at FROM participants WHERE id = %s",
                (participant_id,),
            )
        ).fetchone()
        if not row:
            return None
        return _participant_row(row)


async def list_participants(event_id: str) -> list[dict[str, Any]]:
    async with _get_connection() as conn:
        rows = await conn.execute(
            """SELECT id, name, event_id, creator, created_at FROM participants
               WHERE event_id = %s ORDER BY created_at, id""",
            (event_id,),
        )
        result = []
        async for row in rows:
            result.append(_participant_row(row))
        return result


async def count_participants(event_id: str) -> int:
    async with _get_connection() as conn:
        row = await (
            await conn.execute("SELECT COUNT(*) FROM participants WHERE event_id = %s", (event_id,))
        ).fetchone()
        return int(row[0]) if row else 0
