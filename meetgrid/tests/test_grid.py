from datetime import date, time

import pytest

from meetgrid.errors import ValidationError
from meetgrid.grid import (
    SlotCoordinate,
    format_date_label,
    format_time_label,
    generate_dates,
    generate_grid,
    generate_time_slots,
    grid_payload,
    parse_time,
    time_axis_labels,
    validate_window,
)


class TestGenerateDates:
    def test_inclusive_of_both_ends(self):
        dates = generate_dates(date(2024, 1, 1), date(2024, 1, 3))
        assert dates == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]

    def test_single_day(self):
        assert generate_dates(date(2024, 5, 5), date(2024, 5, 5)) == [date(2024, 5, 5)]

    def test_crosses_month_and_leap_day(self):
        dates = generate_dates(date(2024, 2, 28), date(2024, 3, 1))
        assert dates == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]

    @pytest.mark.parametrize("days", [0, 1, 3, 7])
    def test_length_is_day_difference_plus_one(self, days):
        start = date(2024, 12, 28)
        end = date.fromordinal(start.toordinal() + days)
        assert len(generate_dates(start, end)) == days + 1


class TestGenerateTimeSlots:
    def test_half_hour_steps_excluding_end(self):
        slots = generate_time_slots(time(9, 0), time(11, 0))
        assert slots == [time(9, 0), time(9, 30), time(10, 0), time(10, 30)]

    @pytest.mark.parametrize(
        "start,end",
        [(time(0, 0), time(23, 30)), (time(9, 0), time(9, 30)), (time(8, 30), time(17, 0))],
    )
    def test_length_is_minutes_over_thirty(self, start, end):
        minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
        assert len(generate_time_slots(start, end)) == minutes // 30

    def test_axis_labels_add_trailing_end_time(self):
        labels = time_axis_labels(time(9, 0), time(10, 0))
        assert labels == [time(9, 0), time(9, 30), time(10, 0)]


class TestGenerateGrid:
    def test_cartesian_product_ordered_by_date_then_time(self):
        grid = generate_grid(date(2024, 1, 1), date(2024, 1, 2), time(9, 0), time(10, 0))
        assert [s.key for s in grid] == [
            "2024-01-01T09:00",
            "2024-01-01T09:30",
            "2024-01-02T09:00",
            "2024-01-02T09:30",
        ]

    def test_total_cells(self):
        grid = generate_grid(date(2024, 1, 1), date(2024, 1, 8), time(8, 0), time(18, 0))
        assert len(grid) == 8 * 20
        assert len(set(grid)) == len(grid)


class TestSlotCoordinate:
    def test_key_is_zero_padded(self):
        assert SlotCoordinate(date(2024, 3, 5), time(7, 0)).key == "2024-03-05T07:00"

    def test_from_key(self):
        slot = SlotCoordinate.from_key("2024-01-01T09:30")
        assert slot == SlotCoordinate(date(2024, 1, 1), time(9, 30))
        assert str(slot) == "2024-01-01T09:30"

    @pytest.mark.parametrize("key", ["2024-01-01-09:00", "2024-01-01T9:00", "garbage", "2024-13-01T09:00"])
    def test_from_key_rejects_malformed(self, key):
        with pytest.raises(ValidationError):
            SlotCoordinate.from_key(key)

    def test_parse_time_accepts_zero_seconds(self):
        assert parse_time("09:30:00") == time(9, 30)

    @pytest.mark.parametrize("value", ["09:00:45", "09:30:01"])
    def test_parse_time_rejects_nonzero_seconds(self, value):
        with pytest.raises(ValidationError):
            parse_time(value)


class TestValidateWindow:
    def test_valid_window(self):
        validate_window(date(2024, 1, 1), date(2024, 1, 8), time(9, 0), time(17, 0))

    def test_end_before_start(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_window(date(2024, 1, 2), date(2024, 1, 1), time(9, 0), time(17, 0))
        assert "End date" in exc_info.value.detail

    def test_range_longer_than_a_week(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_window(date(2024, 1, 1), date(2024, 1, 9), time(9, 0), time(17, 0))
        assert "7 days" in exc_info.value.detail

    def test_end_time_not_after_start(self):
        with pytest.raises(ValidationError):
            validate_window(date(2024, 1, 1), date(2024, 1, 1), time(9, 0), time(9, 0))

    def test_off_boundary_time(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_window(date(2024, 1, 1), date(2024, 1, 1), time(9, 15), time(10, 0))
        assert "30-minute" in exc_info.value.detail


class TestLabels:
    @pytest.mark.parametrize(
        "t,expected",
        [(time(0, 0), "12:00 AM"), (time(9, 30), "9:30 AM"), (time(12, 0), "12:00 PM"), (time(23, 30), "11:30 PM")],
    )
    def test_format_time_label(self, t, expected):
        assert format_time_label(t) == expected

    def test_format_date_label(self):
        assert format_date_label(date(2024, 1, 1)) == {
            "day": "Mon",
            "date": 1,
            "month": "Jan",
            "full": "Jan 1, 2024",
        }

    def test_grid_payload(self):
        payload = grid_payload(date(2024, 1, 1), date(2024, 1, 1), time(9, 0), time(10, 0))
        assert payload["time_slots"] == ["09:00", "09:30"]
        assert [t["value"] for t in payload["time_labels"]] == ["09:00", "09:30", "10:00"]
        assert payload["time_labels"][-1]["label"] == "10:00 AM"
        assert payload["slots"] == ["2024-01-01T09:00", "2024-01-01T09:30"]
        assert payload["dates"][0]["value"] == "2024-01-01"
