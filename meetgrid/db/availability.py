from datetime import date, time
from typing import Any

from meetgrid.db.core import _get_connection


async def insert_availability(event_id: str, participant_id: str, slot_date: date, slot_time: time) -> bool:
    """Mark a slot available. Returns False when the record already existed."""
    async with _get_connection() as conn:
        cur = await conn.execute(
            """INSERT INTO availability (event_id, participant_id, slot_date, slot_time)
               VALUES (%s, %s, %s, %s)
               ON CONFLICT (event_id, participant_id, slot_date, slot_time) DO NOTHING""",
            (event_id, participant_id, slot_date, slot_time),
        )
        return cur.rowcount > 0


async def delete_availability(event_id: str, participant_id: str, slot_date: date, slot_time: time) -> bool:
    """Remove a slot marker. Returns False when there was nothing to delete."""
    async with _get_connection() as conn:
        cur = await conn.execute(
            """DELETE FROM availability
               WHERE event_id = %s AND participant_id = %s AND slot_date = %s AND slot_time = %s""",
            (event_id, participant_id, slot_date, slot_time),
        )
        return cur.rowcount > 0


async def list_user_availability(event_id: str, participant_id: str) -> list[tuple[date, time]]:
    async with _get_connection() as conn:
        rows = await conn.execute(
            """SELECT slot_date, slot_time FROM availability
               WHERE event_id = %s AND participant_id = %s
               ORDER BY slot_date, slot_time""",
            (event_id, participant_id),
        )
        result = []
        async for row in rows:
            result.append((row[0], row[1]))
        return result


async def list_event_availability(event_id: str) -> list[dict[str, Any]]:
    """Every availability record of an event with the contributing participant."""
    async with _get_connection() as conn:
        rows = await conn.execute(
            """SELECT a.slot_date, a.slot_time, a.participant_id, p.name
               FROM availability a
               JOIN participants p ON p.id = a.participant_id
               WHERE a.event_id = %s
               ORDER BY a.slot_date, a.slot_time""",
            (event_id,),
        )
        result = []
        async for row in rows:
            result.append(
                {
                    "slot_date": row[0],
                    "slot_time": row[1],
                    "participant_id": row[2],
                    "participant_name": row[3],
                }
            )
        return result
