from meetgrid.db.core import close_pool, get_pool, get_pool_stats, init_pool
from meetgrid.db.events import create_event, get_event
from meetgrid.db.participants import count_participants, create_participant, get_participant, list_participants
from meetgrid.db.availability import (
    delete_availability,
    insert_availability,
    list_event_availability,
    list_user_availability,
)

__all__ = [
    "close_pool",
    "count_participants",
    "create_event",
    "create_participant",
    "delete_availability",
    "get_event",
    "get_participant",
    "get_pool",
    "get_pool_stats",
    "init_pool",
    "insert_availability",
    "list_event_availability",
    "list_participants",
    "list_user_availability",
]
