"""One participant's availability selection with optimistic writes.

Toggles flip local membership immediately, then write to the store. A slot
with a write in flight ignores further toggles until that write resolves. A
failed write restores the slot's pre-toggle membership and is logged, not
raised.

Drag gestures are a two-state machine: ``drag_mode`` is ``None`` when idle
and ``DragMode.SELECT`` / ``DragMode.DESELECT`` while painting. The mode is
fixed by the cell the gesture starts on and applied to every cell entered.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from meetgrid.errors import StoreError, ValidationError
from meetgrid.grid import SlotCoordinate
from meetgrid.store import PresenceStore

logger = logging.getLogger("meetgrid.controller")

SAVED_STATUS_DELAY_SEC = 1.5


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"


class DragMode(str, Enum):
    SELECT = "select"
    DESELECT = "deselect"


@dataclass(frozen=True)
class SelectionSnapshot:
    selected: frozenset[SlotCoordinate]
    save_status: SaveStatus
    drag_mode: DragMode | None

    def to_message(self) -> dict:
        return {
            "type": "selection",
            "slots": sorted(s.key for s in self.selected),
            "save_status": self.save_status.value,
            "drag_mode": self.drag_mode.value if self.drag_mode else None,
        }


Listener = Callable[[SelectionSnapshot], Awaitable[None]]


class AvailabilityController:
    def __init__(
        self,
        store: PresenceStore,
        event_id: str,
        participant_id: str,
        grid: Iterable[SlotCoordinate] | None = None,
        listener: Listener | None = None,
        saved_status_delay: float = SAVED_STATUS_DELAY_SEC,
    ):
        self.store = store
        self.event_id = event_id
        self.participant_id = participant_id
        self.grid = frozenset(grid) if grid is not None else None
        self.listener = listener
        self.saved_status_delay = saved_status_delay

        self.selected: set[SlotCoordinate] = set()
        self.in_flight: set[SlotCoordinate] = set()
        self.save_status = SaveStatus.IDLE
        self.drag_mode: DragMode | None = None

        self._status_reset: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        # slot -> (wanted membership, task) for drag writes not yet applied
        self._targets: dict[SlotCoordinate, tuple[bool, asyncio.Task]] = {}

    def snapshot(self) -> SelectionSnapshot:
        return SelectionSnapshot(frozenset(self.selected), self.save_status, self.drag_mode)

    async def _notify(self) -> None:
        if self.listener is None:
            return
        try:
            await self.listener(self.snapshot())
        except Exception:
            logger.exception("controller.listener error event=%s participant=%s", self.event_id, self.participant_id)

    async def load(self) -> set[SlotCoordinate]:
        """Initialize the selection from the store; a failed read leaves it empty."""
        try:
            slots = await self.store.list_presence_for_user(self.event_id, self.participant_id)
        except StoreError as e:
            logger.warning("controller.load failed event=%s participant=%s err=%s",
                           self.event_id, self.participant_id, e.detail)
            slots = set()
        if self.grid is not None:
            slots = {s for s in slots if s in self.grid}
        self.selected = set(slots)
        await self._notify()
        return set(self.selected)

    def _check_slot(self, slot: SlotCoordinate) -> None:
        if self.grid is not None and slot not in self.grid:
            raise ValidationError(detail=f"Slot {slot.key} is outside the event window")

    def _cancel_status_reset(self) -> None:
        if self._status_reset and not self._status_reset.done():
            self._status_reset.cancel()
        self._status_reset = None

    async def _reset_status_later(self) -> None:
        await asyncio.sleep(self.saved_status_delay)
        self.save_status = SaveStatus.IDLE
        self._status_reset = None
        await self._notify()

    async def toggle_slot(self, slot: SlotCoordinate) -> bool:
        """Flip one slot and persist it. Returns True when the write succeeded.

        Returns False without touching the store when a write for the slot is
        already in flight, and False after rolling back when the write fails.
        """
        self._check_slot(slot)
        if slot in self.in_flight:
            logger.debug("controller.toggle skipped in_flight slot=%s", slot.key)
            return False

        was_selected = slot in self.selected
        if was_selected:
            self.selected.discard(slot)
        else:
            self.selected.add(slot)
        self.in_flight.add(slot)
        self._cancel_status_reset()
        self.save_status = SaveStatus.SAVING
        await self._notify()

        try:
            if was_selected:
                await self.store.clear_presence(self.event_id, self.participant_id, slot)
            else:
                await self.store.record_presence(self.event_id, self.participant_id, slot)
        except StoreError as e:
            logger.warning("controller.toggle failed slot=%s event=%s participant=%s err=%s",
                           slot.key, self.event_id, self.participant_id, e.detail)
            if was_selected:
                self.selected.add(slot)
            else:
                self.selected.discard(slot)
            self.in_flight.discard(slot)
            self._cancel_status_reset()
            self.save_status = SaveStatus.IDLE
            await self._notify()
            return False
        except BaseException:
            self.in_flight.discard(slot)
            raise

        self.in_flight.discard(slot)
        if not self.in_flight:
            self.save_status = SaveStatus.SAVED
            self._status_reset = asyncio.create_task(self._reset_status_later())
        await self._notify()
        return True

    def schedule_toggle(self, slot: SlotCoordinate) -> asyncio.Task:
        """Run toggle_slot in the background; drain() waits for it."""
        self._check_slot(slot)
        task = asyncio.create_task(self.toggle_slot(slot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _projected(self, slot: SlotCoordinate) -> bool:
        """Membership once every scheduled drag write for slot has run."""
        target = self._targets.get(slot)
        if target is not None:
            return target[0]
        return slot in self.selected

    async def _apply(self, slot: SlotCoordinate, want_selected: bool) -> bool:
        try:
            if (slot in self.selected) == want_selected:
                return False
            return await self.toggle_slot(slot)
        finally:
            target = self._targets.get(slot)
            if target is not None and target[1] is asyncio.current_task():
                del self._targets[slot]

    def _schedule_apply(self, slot: SlotCoordinate, want_selected: bool) -> asyncio.Task:
        task = asyncio.create_task(self._apply(slot, want_selected))
        self._targets[slot] = (want_selected, task)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def start_drag(self, slot: SlotCoordinate) -> asyncio.Task:
        """Begin a paint (or erase) gesture on slot and apply it there."""
        self._check_slot(slot)
        painting = not self._projected(slot)
        self.drag_mode = DragMode.SELECT if painting else DragMode.DESELECT
        return self._schedule_apply(slot, painting)

    def drag_over(self, slot: SlotCoordinate) -> asyncio.Task | None:
        """Apply the gesture's mode to a cell the pointer entered.

        The wanted membership travels with the task and is re-checked when it
        runs, so a cell reached twice is never flipped back.
        """
        if self.drag_mode is None:
            return None
        self._check_slot(slot)
        want_selected = self.drag_mode is DragMode.SELECT
        if self._projected(slot) == want_selected:
            return None
        return self._schedule_apply(slot, want_selected)

    def end_drag(self) -> None:
        self.drag_mode = None

    async def drain(self) -> None:
        """Wait for every scheduled write to resolve."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        self.end_drag()
        await self.drain()
        self._cancel_status_reset()
