from dataclasses import dataclass
from enum import Enum

DAY_HOURS = 24


class ReservationStatus(str, Enum):
    BOOKING = "Booking"
    CHECKED_IN = "CheckedIn"
    COACHING = "Coaching"
    BLOCKED = "Blocked"
    COMPLETED = "Completed"
    PENDING_PAYMENT = "PendingPayment"


@dataclass(frozen=True)
class HourRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < DAY_HOURS or not 0 < self.end <= DAY_HOURS:
            raise ValueError(f"Hour range must lie within 0..{DAY_HOURS}.")
        if self.start >= self.end:
            raise ValueError("Hour range start must be earlier than end.")

    def overlaps(self, other: "HourRange") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Return True when two hour intervals share at least one hour.

    Intervals are half-open ranges: [start, end)
    so touching boundaries (e.g. 9-10 and 10-11) do not overlap.
    """
    if a_start >= a_end:
        raise ValueError("a_start must be earlier than a_end.")
    if b_start >= b_end:
        raise ValueError("b_start must be earlier than b_end.")

    return a_start < b_end and b_start < a_end
