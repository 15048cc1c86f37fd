import asyncio
from datetime import date, time
from unittest.mock import AsyncMock

import pytest

from conftest import FakePresenceStore
from meetgrid.controller import AvailabilityController, DragMode, SaveStatus
from meetgrid.errors import ValidationError
from meetgrid.grid import SlotCoordinate, generate_grid

A = SlotCoordinate(date(2024, 1, 1), time(9, 0))
B = SlotCoordinate(date(2024, 1, 1), time(9, 30))
C = SlotCoordinate(date(2024, 1, 1), time(10, 0))
GRID = generate_grid(date(2024, 1, 1), date(2024, 1, 2), time(9, 0), time(11, 0))


def _controller(store, **kwargs):
    kwargs.setdefault("saved_status_delay", 0.01)
    return AvailabilityController(store, "ev1", "p1", grid=GRID, **kwargs)


@pytest.mark.asyncio
async def test_load_initializes_selection():
    store = FakePresenceStore(selected={A, B})
    controller = _controller(store)
    assert await controller.load() == {A, B}
    assert controller.selected == {A, B}


@pytest.mark.asyncio
async def test_load_degrades_to_empty_on_store_error():
    store = FakePresenceStore(selected={A})
    store.fail_reads = True
    controller = _controller(store)
    assert await controller.load() == set()


@pytest.mark.asyncio
async def test_load_ignores_slots_outside_grid():
    outside = SlotCoordinate(date(2024, 2, 1), time(9, 0))
    store = FakePresenceStore(selected={A, outside})
    controller = _controller(store)
    assert await controller.load() == {A}


@pytest.mark.asyncio
async def test_toggle_round_trip():
    store = FakePresenceStore()
    controller = _controller(store)
    await controller.load()

    assert await controller.toggle_slot(A) is True
    assert A in controller.selected
    assert store.selected == {A}

    assert await controller.toggle_slot(A) is True
    assert A not in controller.selected
    assert store.writes == [("record", A), ("clear", A)]


@pytest.mark.asyncio
async def test_toggle_while_in_flight_is_ignored():
    store = FakePresenceStore()
    store.hold_writes = True
    controller = _controller(store)

    first = asyncio.create_task(controller.toggle_slot(A))
    await asyncio.sleep(0)
    assert A in controller.selected
    assert A in controller.in_flight
    assert controller.save_status is SaveStatus.SAVING

    assert await controller.toggle_slot(A) is False
    assert A in controller.selected
    assert len(store.writes) == 1

    store.release()
    assert await first is True
    assert controller.in_flight == set()
    assert controller.save_status is SaveStatus.SAVED


@pytest.mark.asyncio
async def test_other_slots_can_toggle_while_one_is_in_flight():
    store = FakePresenceStore()
    store.hold_writes = True
    controller = _controller(store)

    first = asyncio.create_task(controller.toggle_slot(A))
    second = asyncio.create_task(controller.toggle_slot(B))
    await asyncio.sleep(0)
    assert controller.in_flight == {A, B}

    store.release()
    assert await asyncio.gather(first, second) == [True, True]
    assert store.selected == {A, B}


@pytest.mark.asyncio
async def test_failed_clear_rolls_back():
    store = FakePresenceStore(selected={A})
    controller = _controller(store)
    await controller.load()
    store.fail_writes = True

    assert await controller.toggle_slot(A) is False
    assert A in controller.selected
    assert A not in controller.in_flight
    assert controller.save_status is SaveStatus.IDLE


@pytest.mark.asyncio
async def test_failed_record_rolls_back():
    store = FakePresenceStore()
    store.fail_writes = True
    controller = _controller(store)

    assert await controller.toggle_slot(B) is False
    assert B not in controller.selected


@pytest.mark.asyncio
async def test_unexpected_error_propagates():
    store = FakePresenceStore()
    store.record_presence = AsyncMock(side_effect=RuntimeError("boom"))
    controller = _controller(store)

    with pytest.raises(RuntimeError):
        await controller.toggle_slot(A)
    assert controller.in_flight == set()


@pytest.mark.asyncio
async def test_saved_status_returns_to_idle():
    store = FakePresenceStore()
    controller = _controller(store)

    await controller.toggle_slot(A)
    assert controller.save_status is SaveStatus.SAVED
    await asyncio.sleep(0.05)
    assert controller.save_status is SaveStatus.IDLE


@pytest.mark.asyncio
async def test_toggle_outside_grid_is_rejected():
    controller = _controller(FakePresenceStore())
    with pytest.raises(ValidationError):
        await controller.toggle_slot(SlotCoordinate(date(2024, 3, 1), time(9, 0)))


@pytest.mark.asyncio
async def test_listener_receives_snapshots():
    messages = []

    async def listener(snapshot):
        messages.append(snapshot.to_message())

    controller = _controller(FakePresenceStore(), listener=listener)
    await controller.toggle_slot(A)

    assert messages[0] == {
        "type": "selection",
        "slots": ["2024-01-01T09:00"],
        "save_status": "saving",
        "drag_mode": None,
    }
    assert messages[-1]["save_status"] == "saved"


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_toggle():
    listener = AsyncMock(side_effect=RuntimeError("socket gone"))
    controller = _controller(FakePresenceStore(), listener=listener)
    assert await controller.toggle_slot(A) is True


class TestDrag:
    @pytest.mark.asyncio
    async def test_paint_selects_cells_entered(self):
        store = FakePresenceStore()
        controller = _controller(store)
        await controller.load()

        controller.start_drag(A)
        assert controller.drag_mode is DragMode.SELECT
        controller.drag_over(B)
        controller.drag_over(C)
        controller.end_drag()
        await controller.drain()

        assert controller.selected == {A, B, C}
        assert store.selected == {A, B, C}
        assert controller.drag_mode is None

    @pytest.mark.asyncio
    async def test_erase_only_touches_selected_cells(self):
        store = FakePresenceStore(selected={A, B})
        controller = _controller(store)
        await controller.load()

        controller.start_drag(A)
        assert controller.drag_mode is DragMode.DESELECT
        assert controller.drag_over(B) is not None
        assert controller.drag_over(C) is None
        await controller.drain()

        assert controller.selected == set()
        assert ("record", C) not in store.writes

    @pytest.mark.asyncio
    async def test_drag_over_without_gesture_does_nothing(self):
        controller = _controller(FakePresenceStore())
        assert controller.drag_over(A) is None
        assert controller.selected == set()

    @pytest.mark.asyncio
    async def test_close_waits_for_pending_writes(self):
        store = FakePresenceStore()
        controller = _controller(store)
        controller.start_drag(A)
        controller.drag_over(B)
        await controller.close()

        assert store.selected == {A, B}
        assert controller.drag_mode is None

    @pytest.mark.asyncio
    async def test_reentering_start_cell_keeps_it_painted(self):
        store = FakePresenceStore()
        controller = _controller(store)
        await controller.load()

        controller.start_drag(A)
        assert controller.drag_over(A) is None
        await controller.drain()

        assert store.writes == [("record", A)]
        assert controller.selected == {A}

    @pytest.mark.asyncio
    async def test_cell_entered_twice_is_erased_once(self):
        store = FakePresenceStore(selected={A, B})
        controller = _controller(store)
        await controller.load()

        controller.start_drag(A)
        assert controller.drag_over(B) is not None
        assert controller.drag_over(B) is None
        await controller.drain()

        assert store.writes == [("clear", A), ("clear", B)]
        assert controller.selected == set()

    @pytest.mark.asyncio
    async def test_scheduled_write_rechecks_state_when_it_runs(self):
        store = FakePresenceStore()
        controller = _controller(store)
        await controller.load()

        controller.start_drag(A)
        # a direct toggle lands first and already selects A
        await controller.toggle_slot(A)
        await controller.drain()

        assert store.writes == [("record", A)]
        assert controller.selected == {A}

    @pytest.mark.asyncio
    async def test_new_gesture_sees_pending_paint(self):
        store = FakePresenceStore()
        controller = _controller(store)
        await controller.load()

        controller.start_drag(A)
        controller.end_drag()
        controller.start_drag(A)
        assert controller.drag_mode is DragMode.DESELECT
        await controller.drain()

        assert store.writes == [("record", A), ("clear", A)]
        assert controller.selected == set()
