from typing import Literal, TypedDict, Union


class AvailabilityChangedEvent(TypedDict):
    type: Literal["availability_changed"]
    event_id: str
    participant_id: str
    slot: str
    available: bool
    timestamp: str


class PingEvent(TypedDict):
    type: Literal["ping"]


class SelectionMessage(TypedDict):
    type: Literal["selection"]
    slots: list[str]
    save_status: str
    drag_mode: str | None


class AggregateMessage(TypedDict):
    type: Literal["aggregate"]
    aggregate: dict


class ErrorMessage(TypedDict):
    type: Literal["error"]
    detail: str


# Messages a websocket session may push to its client
SessionMessage = Union[SelectionMessage, AggregateMessage, ErrorMessage, PingEvent]
