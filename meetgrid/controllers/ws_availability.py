import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from meetgrid import state
from meetgrid.aggregation import Aggregation, describe_view
from meetgrid.config import get_settings
from meetgrid.controller import AvailabilityController, SelectionSnapshot
from meetgrid.errors import APIError
from meetgrid.grid import SlotCoordinate
from meetgrid.live import LiveAggregation

router = APIRouter()

logger = logging.getLogger("meetgrid.ws")


@router.websocket("/ws/events/{event_id}")
async def websocket_availability(websocket: WebSocket, event_id: str):
    await websocket.accept()
    settings = get_settings()
    store = state.store
    if store is None:
        await websocket.close(code=1011)
        return

    try:
        event = await store.get_event(event_id)
    except APIError as e:
        logger.warning("ws.open failed event=%s err=%s", event_id, e.detail)
        event = None
    if event is None:
        await websocket.send_text(json.dumps({"type": "error", "detail": "Event not found"}))
        await websocket.close(code=1008)
        return

    send_lock = asyncio.Lock()

    async def send(message: dict) -> None:
        async with send_lock:
            await websocket.send_text(json.dumps(message))

    async def on_aggregate(aggregation: Aggregation) -> None:
        await send({"type": "aggregate", "aggregate": {**aggregation.to_dict(), **describe_view(aggregation)}})

    async def on_selection(snapshot: SelectionSnapshot) -> None:
        await send(snapshot.to_message())

    controller: AvailabilityController | None = None
    participant_id = websocket.query_params.get("participant")
    if participant_id:
        try:
            participant = await store.get_participant(participant_id)
        except APIError as e:
            logger.warning("ws.open failed participant=%s err=%s", participant_id, e.detail)
            participant = None
        if participant is None or participant.event_id != event_id:
            await send({"type": "error", "detail": "Participant not found"})
            await websocket.close(code=1008)
            return
        controller = AvailabilityController(
            store,
            event_id,
            participant_id,
            grid=event.grid(settings.grid.slot_minutes),
            listener=on_selection,
            saved_status_delay=settings.grid.saved_status_delay_sec,
        )

    live = LiveAggregation(store, state.event_bus, event_id, on_update=on_aggregate)

    async def heartbeat():
        try:
            while True:
                await asyncio.sleep(settings.grid.ws_heartbeat_sec)
                await send({"type": "ping"})
        except Exception as e:
            logger.debug("ws.heartbeat stopped event=%s err=%r", event_id, e)

    heartbeat_task = asyncio.create_task(heartbeat())
    logger.info("ws.open event=%s participant=%s", event_id, participant_id or "-")

    try:
        async with live:
            if controller is not None:
                await controller.load()
            while True:
                raw = await websocket.receive_text()
                if raw == "pong":
                    continue
                try:
                    await _handle_message(raw, controller, live)
                except APIError as e:
                    await send({"type": "error", "detail": e.detail})
    except WebSocketDisconnect:
        pass
    finally:
        heartbeat_task.cancel()
        try:
            await heartbeat_task
        except asyncio.CancelledError:
            pass
        if controller is not None:
            await controller.close()
        logger.info("ws.close event=%s participant=%s", event_id, participant_id or "-")


async def _handle_message(raw: str, controller: AvailabilityController | None, live: LiveAggregation) -> None:
    try:
        payload = json.loads(raw)
    except ValueError:
        return
    if not isinstance(payload, dict):
        return
    kind = payload.get("type")

    if kind == "filter":
        participants = payload.get("participants") or []
        if not isinstance(participants, list):
            return
        await live.set_filter([str(p) for p in participants])
        return

    if controller is None:
        return
    if kind == "drag_end":
        controller.end_drag()
        return
    slot_key = payload.get("slot")
    if not isinstance(slot_key, str):
        return
    slot = SlotCoordinate.from_key(slot_key)
    if kind == "toggle":
        controller.schedule_toggle(slot)
    elif kind == "drag_start":
        controller.start_drag(slot)
    elif kind == "drag_over":
        controller.drag_over(slot)
