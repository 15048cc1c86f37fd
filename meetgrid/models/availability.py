from typing import NamedTuple

from pydantic import BaseModel

from meetgrid.grid import SlotCoordinate


class PresenceRecord(NamedTuple):
    """One stored availability marker, annotated with who left it."""

    slot: SlotCoordinate
    participant_id: str
    participant_name: str | None = None


class SelectionResponse(BaseModel):
    event_id: str
    participant_id: str
    slots: list[str]


class PresenceWriteResponse(BaseModel):
    event_id: str
    participant_id: str
    slot: str
    available: bool
