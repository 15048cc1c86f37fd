import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Query

from meetgrid.aggregation import aggregate, describe_view
from meetgrid.config import get_settings
from meetgrid.dependencies import Store
from meetgrid.errors import NotFoundError, StoreError, ValidationError
from meetgrid.grid import SlotCoordinate, grid_payload
from meetgrid.models.availability import PresenceWriteResponse, SelectionResponse
from meetgrid.models.events import (
    CreateEventRequest,
    CreateEventResponse,
    CreateParticipantRequest,
    Event,
    EventResponse,
    Participant,
    VerifyPasswordRequest,
)
from meetgrid.store import AvailabilityStore

logger = logging.getLogger("meetgrid.events")
router = APIRouter()


async def _require_event(store: AvailabilityStore, event_id: str) -> Event:
    event = await store.get_event(event_id)
    if not event:
        logger.warning("Event not found: %s", event_id)
        raise NotFoundError(detail="Event not found", resource_type="event", resource_id=event_id)
    return event


async def _require_participant(store: AvailabilityStore, event_id: str, participant_id: str) -> Participant:
    participant = await store.get_participant(participant_id)
    if not participant or participant.event_id != event_id:
        logger.warning("Participant %s not found in event %s", participant_id, event_id)
        raise NotFoundError(detail="Participant not found", resource_type="participant", resource_id=participant_id)
    return participant


def _event_slot(event: Event, slot_key: str) -> SlotCoordinate:
    slot = SlotCoordinate.from_key(slot_key)
    if slot not in set(event.grid(get_settings().grid.slot_minutes)):
        raise ValidationError(detail=f"Slot {slot_key} is outside the event window")
    return slot


@router.post("/events", status_code=201)
async def create_event(req: CreateEventRequest, store: Store) -> CreateEventResponse:
    grid_settings = get_settings().grid
    new_event = req.validated(grid_settings.max_range_days, grid_settings.slot_minutes)
    logger.info("POST /events name=%s dates=%s..%s", new_event.name, new_event.start_date, new_event.end_date)
    event, participant = await store.create_event(new_event)
    logger.info("Created event id=%s creator=%s", event.id, participant.id)
    return CreateEventResponse(event=event, participant=participant)


@router.get("/events/{event_id}")
async def get_event(event_id: str, store: Store) -> EventResponse:
    logger.info("GET /events/%s", event_id)
    event = await _require_event(store, event_id)
    grid = grid_payload(
        event.start_date, event.end_date, event.start_time, event.end_time, get_settings().grid.slot_minutes
    )
    return EventResponse(event=event, grid=grid)


@router.post("/events/{event_id}/verify-password")
async def verify_password(event_id: str, req: VerifyPasswordRequest, store: Store) -> Dict[str, bool]:
    await _require_event(store, event_id)
    verified = await store.verify_password(event_id, req.password)
    if not verified:
        logger.info("Wrong password for event %s", event_id)
    return {"verified": verified}


@router.get("/events/{event_id}/participants")
async def list_participants(event_id: str, store: Store) -> Dict[str, Any]:
    await _require_event(store, event_id)
    try:
        participants = await store.list_participants(event_id)
    except StoreError:
        participants = []
    return {"participants": participants, "count": len(participants)}


@router.post("/events/{event_id}/participants", status_code=201)
async def add_participant(event_id: str, req: CreateParticipantRequest, store: Store) -> Participant:
    name = req.validated_name()
    await _require_event(store, event_id)
    participant = await store.create_participant(event_id, name)
    logger.info("Added participant %s to event %s", participant.id, event_id)
    return participant


@router.get("/events/{event_id}/participants/{participant_id}/availability")
async def get_participant_availability(event_id: str, participant_id: str, store: Store) -> SelectionResponse:
    await _require_participant(store, event_id, participant_id)
    try:
        slots = await store.list_presence_for_user(event_id, participant_id)
    except StoreError:
        slots = set()
    return SelectionResponse(
        event_id=event_id,
        participant_id=participant_id,
        slots=sorted(s.key for s in slots),
    )


@router.put("/events/{event_id}/participants/{participant_id}/availability/{slot_key}")
async def mark_available(event_id: str, participant_id: str, slot_key: str, store: Store) -> PresenceWriteResponse:
    event = await _require_event(store, event_id)
    slot = _event_slot(event, slot_key)
    await _require_participant(store, event_id, participant_id)
    await store.record_presence(event_id, participant_id, slot)
    return PresenceWriteResponse(event_id=event_id, participant_id=participant_id, slot=slot.key, available=True)


@router.delete("/events/{event_id}/participants/{participant_id}/availability/{slot_key}")
async def clear_available(event_id: str, participant_id: str, slot_key: str, store: Store) -> PresenceWriteResponse:
    event = await _require_event(store, event_id)
    slot = _event_slot(event, slot_key)
    await _require_participant(store, event_id, participant_id)
    await store.clear_presence(event_id, participant_id, slot)
    return PresenceWriteResponse(event_id=event_id, participant_id=participant_id, slot=slot.key, available=False)


@router.get("/events/{event_id}/aggregate")
async def get_aggregate(
    event_id: str,
    store: Store,
    participants: List[str] = Query([]),
) -> Dict[str, Any]:
    await _require_event(store, event_id)
    try:
        records = await store.list_presence_for_event(event_id)
        roster = await store.list_participants(event_id)
    except StoreError:
        records, roster = [], []
    aggregation = aggregate(records, roster, participants)
    logger.info("GET /events/%s/aggregate slots=%d filter=%d", event_id, len(aggregation.tallies), len(participants))
    return {**aggregation.to_dict(), **describe_view(aggregation)}
