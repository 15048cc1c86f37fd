"""Group availability tallies for the heat-map view.

Slots nobody (or nobody in the filter) marked are absent from the tallies;
``Aggregation.count`` and ``Aggregation.tally`` report them as zero.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from meetgrid.grid import SlotCoordinate
from meetgrid.models.availability import PresenceRecord
from meetgrid.models.events import Participant


class HeatBucket(IntEnum):
    EMPTY = 0
    FAINT = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    FULL = 5


_THRESHOLDS = (
    (0.8, HeatBucket.FULL),
    (0.6, HeatBucket.HIGH),
    (0.4, HeatBucket.MEDIUM),
    (0.2, HeatBucket.LOW),
)


def heat_bucket(count: int, max_count: int) -> HeatBucket:
    if count <= 0 or max_count <= 0:
        return HeatBucket.EMPTY
    percentage = count / max_count
    for threshold, bucket in _THRESHOLDS:
        if percentage >= threshold:
            return bucket
    return HeatBucket.FAINT


@dataclass(frozen=True)
class SlotTally:
    count: int
    contributors: frozenset[str]


_EMPTY_TALLY = SlotTally(0, frozenset())


@dataclass
class Aggregation:
    tallies: dict[SlotCoordinate, SlotTally]
    max_count: int
    total_participants: int
    participant_filter: frozenset[str] = frozenset()
    names: dict[str, str] = field(default_factory=dict)

    def tally(self, slot: SlotCoordinate) -> SlotTally:
        return self.tallies.get(slot, _EMPTY_TALLY)

    def count(self, slot: SlotCoordinate) -> int:
        return self.tally(slot).count

    def bucket(self, slot: SlotCoordinate) -> HeatBucket:
        return heat_bucket(self.count(slot), self.max_count)

    def to_dict(self) -> dict[str, Any]:
        slots = {}
        for slot in sorted(self.tallies):
            tally = self.tallies[slot]
            slots[slot.key] = {
                "count": tally.count,
                "contributors": [
                    {"id": pid, "name": self.names.get(pid)} for pid in sorted(tally.contributors)
                ],
                "bucket": int(heat_bucket(tally.count, self.max_count)),
            }
        return {
            "max_count": self.max_count,
            "total_participants": self.total_participants,
            "filter": sorted(self.participant_filter),
            "slots": slots,
        }


def aggregate(
    records: Iterable[PresenceRecord],
    roster: Iterable[Participant],
    participant_filter: Iterable[str] = (),
) -> Aggregation:
    """Count contributors per slot, optionally restricted to participant_filter.

    An empty filter means everyone. The heat-map scale is the filter size when
    filtering and the roster size otherwise.
    """
    chosen = frozenset(participant_filter)
    roster = list(roster)
    names = {p.id: p.name for p in roster}

    contributors: dict[SlotCoordinate, set[str]] = defaultdict(set)
    for record in records:
        if chosen and record.participant_id not in chosen:
            continue
        contributors[record.slot].add(record.participant_id)
        if record.participant_name and record.participant_id not in names:
            names[record.participant_id] = record.participant_name

    tallies = {slot: SlotTally(len(ids), frozenset(ids)) for slot, ids in contributors.items()}
    return Aggregation(
        tallies=tallies,
        max_count=len(chosen) if chosen else len(roster),
        total_participants=len(roster),
        participant_filter=chosen,
        names=names,
    )


def describe_view(aggregation: Aggregation) -> dict[str, str]:
    """Heading and subtitle for the group view."""
    chosen = aggregation.participant_filter
    if not chosen:
        title = "Group Availability"
    elif len(chosen) == 1:
        (only,) = chosen
        title = f"{aggregation.names.get(only, only)}'s Availability"
    else:
        title = f"{len(chosen)} Users' Availability"
    if chosen:
        subtitle = "Showing filtered availability"
    else:
        total = aggregation.total_participants
        subtitle = f"{total} {'person' if total == 1 else 'people'} responded"
    return {"title": title, "subtitle": subtitle}
