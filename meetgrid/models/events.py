from datetime import date, time

from pydantic import BaseModel, field_validator

from meetgrid.errors import ValidationError
from meetgrid.grid import SLOT_MINUTES, MAX_RANGE_DAYS, SlotCoordinate, generate_grid, parse_date, parse_time, validate_window

EVENT_NAME_MAX = 200
PARTICIPANT_NAME_MAX = 100
PASSWORD_MAX = 200


class Event(BaseModel):
    id: str
    name: str
    start_date: date
    end_date: date
    start_time: time
    end_time: time
    created_at: str
    password_protected: bool = False

    def grid(self, slot_minutes: int = SLOT_MINUTES) -> list[SlotCoordinate]:
        return generate_grid(self.start_date, self.end_date, self.start_time, self.end_time, slot_minutes)


class Participant(BaseModel):
    id: str
    name: str
    event_id: str
    creator: bool = False
    created_at: str


class NewEvent(BaseModel):
    """Validated event fields ready to be stored."""

    name: str
    creator_name: str
    password: str | None
    start_date: date
    end_date: date
    start_time: time
    end_time: time


def _required_name(value: str | None, label: str, max_len: int) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(detail=f"{label} is required")
    if len(value) > max_len:
        raise ValidationError(detail=f"{label} must be at most {max_len} characters")
    return value


class CreateEventRequest(BaseModel):
    name: str | None = None
    creator_name: str | None = None
    password: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str | None) -> str | None:
        if v is not None and len(v) > PASSWORD_MAX:
            raise ValueError(f"password must be at most {PASSWORD_MAX} characters")
        return v

    def validated(self, max_range_days: int = MAX_RANGE_DAYS, slot_minutes: int = SLOT_MINUTES) -> NewEvent:
        """Check every field and return the normalized event, raising ValidationError on the first problem."""
        creator_name = _required_name(self.creator_name, "Your name", PARTICIPANT_NAME_MAX)
        name = _required_name(self.name, "Event name", EVENT_NAME_MAX)
        for label, value in (
            ("Start date", self.start_date),
            ("End date", self.end_date),
            ("Start time", self.start_time),
            ("End time", self.end_time),
        ):
            if not value:
                raise ValidationError(detail=f"{label} is required")
        start_date = parse_date(self.start_date)
        end_date = parse_date(self.end_date)
        start_time = parse_time(self.start_time)
        end_time = parse_time(self.end_time)
        validate_window(start_date, end_date, start_time, end_time, max_range_days, slot_minutes)
        password = self.password.strip() if self.password else None
        return NewEvent(
            name=name,
            creator_name=creator_name,
            password=password or None,
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
        )


class CreateParticipantRequest(BaseModel):
    name: str | None = None

    def validated_name(self) -> str:
        return _required_name(self.name, "Name", PARTICIPANT_NAME_MAX)


class VerifyPasswordRequest(BaseModel):
    password: str = ""


class EventResponse(BaseModel):
    event: Event
    grid: dict[str, list]


class CreateEventResponse(BaseModel):
    event: Event
    participant: Participant
