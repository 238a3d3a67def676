from dataclasses import dataclass


@dataclass(frozen=True)
class Slot:
    start: int
    end: int
    label: str


def slot_label(start: int, end: int) -> str:
    return f"{start}:00 - {end}:00"


def enumerate_slots(operating_start: int, operating_end: int) -> list[Slot]:
    """Split the operating window [operating_start, operating_end) into one-hour slots."""
    if not 0 <= operating_start <= 24 or not 0 <= operating_end <= 24:
        raise ValueError("Operating hours must be between 0 and 24.")
    if operating_start >= operating_end:
        raise ValueError("operating_start must be earlier than operating_end.")

    return [Slot(start=hour, end=hour + 1, label=slot_label(hour, hour + 1)) for hour in range(operating_start, operating_end)]
