from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .booking import ReservationStatus, overlaps
from .time_grid import Slot, enumerate_slots
from .yaml_store import ReservationRecord

FORM_FLAG = "flag"
FORM_LIST = "list"
AVAILABILITY_FORMS = (FORM_FLAG, FORM_LIST)


@dataclass(frozen=True)
class SlotAvailability:
    start: int
    end: int
    label: str
    total: int
    occupied: int

    @property
    def free(self) -> int:
        return max(0, self.total - self.occupied)

    @property
    def available(self) -> bool:
        return self.free > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "slot": self.label,
            "startHour": self.start,
            "endHour": self.end,
            "totalResources": self.total,
            "bookedResources": self.occupied,
            "availableSlots": self.free,
            "available": self.available,
        }


def compute_availability(
    resource_ids: Sequence[str],
    reservations: Iterable[ReservationRecord],
    operating_start: int,
    operating_end: int,
    ignored_statuses: Iterable[ReservationStatus] = (ReservationStatus.BLOCKED,),
) -> list[SlotAvailability]:
    """Count free resources per grid slot.

    ``reservations`` must already be restricted to one date. A resource is
    occupied in a slot when at least one of its reservations overlaps it, so a
    resource is counted once no matter how many reservations it has there.
    """
    pool = set(resource_ids)
    ignored = set(ignored_statuses)
    occupying = [
        record for record in reservations if record.resource_id in pool and record.status not in ignored
    ]

    rows: list[SlotAvailability] = []
    for slot in enumerate_slots(operating_start, operating_end):
        taken = {
            record.resource_id
            for record in occupying
            if overlaps(record.start_hour, record.end_hour, slot.start, slot.end)
        }
        rows.append(_slot_row(slot, len(pool), len(taken)))
    return rows


def shape_availability(rows: Sequence[SlotAvailability], form: str = FORM_FLAG) -> list[SlotAvailability]:
    """Flag form keeps every slot; list form drops slots with nothing free."""
    if form == FORM_FLAG:
        return list(rows)
    if form == FORM_LIST:
        return [row for row in rows if row.available]
    raise ValueError(f"Unknown availability form: {form}")


def _slot_row(slot: Slot, total: int, occupied: int) -> SlotAvailability:
    return SlotAvailability(start=slot.start, end=slot.end, label=slot.label, total=total, occupied=occupied)
