"""Request validation and boundary field mapping.

Clients of earlier deployments send the same request under different field
names (``centerId`` / ``centreId`` / ``venueId``, ``type`` / ``category`` /
``status`` ...) and different spellings of the same status. Everything is
mapped to one canonical shape here, before any allocation work starts.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

from .booking import ReservationStatus
from .errors import ValidationError
from .settings import AllocationSettings

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^(?P<hour>\d{2}):(?P<minute>\d{2})$")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "venueId": ("venueId", "centerId", "centreId"),
    "activityId": ("activityId", "sportId"),
    "resourceId": ("resourceId", "equipmentId"),
    "actorId": ("actorId", "userId"),
    "date": ("date", "bookingDate", "reservationDate"),
    "startHour": ("startHour", "startTime", "startPeriod"),
    "endHour": ("endHour", "endTime", "endPeriod"),
    "status": ("status", "type", "category"),
    "remarks": ("remarks", "note"),
}

STATUS_ALIASES: dict[str, ReservationStatus] = {
    **{status.value: status for status in ReservationStatus},
    "Checked": ReservationStatus.CHECKED_IN,
    "Checked-in": ReservationStatus.CHECKED_IN,
    "Payment Pending": ReservationStatus.PENDING_PAYMENT,
    "Pending Payment": ReservationStatus.PENDING_PAYMENT,
    "Blocked / Tournament": ReservationStatus.BLOCKED,
}

RESERVATION_REQUIRED = ("venueId", "activityId", "date", "startHour", "endHour", "status")
AVAILABILITY_REQUIRED = ("venueId", "activityId", "date")


@dataclass(frozen=True)
class ReservationRequest:
    venue_id: str
    activity_id: str
    date: date
    start_hour: int
    end_hour: int
    status: ReservationStatus
    resource_id: str | None = None
    actor_id: str | None = None
    remarks: str = ""


@dataclass(frozen=True)
class AvailabilityQuery:
    venue_id: str
    activity_id: str
    date: date


def normalize_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Map any accepted field spelling to its canonical name.

    The first alias present wins. Unrecognised keys are dropped.
    """
    normalized: dict[str, Any] = {}
    for canonical, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            if alias in payload and not _is_missing(payload[alias]):
                normalized[canonical] = payload[alias]
                break
    return normalized


def validate_reservation_request(
    payload: Mapping[str, Any],
    settings: AllocationSettings,
    actor_id: str | None = None,
) -> ReservationRequest:
    fields = normalize_fields(payload)
    if actor_id is not None:
        fields["actorId"] = actor_id

    _require(fields, RESERVATION_REQUIRED)
    _check_ids(fields, ("venueId", "activityId", "resourceId", "actorId"))
    target_date = _parse_date(fields["date"])
    start_hour = _parse_hour(fields["startHour"], "startHour")
    end_hour = _parse_hour(fields["endHour"], "endHour")
    _check_window(start_hour, end_hour, settings)
    if end_hour - start_hour < settings.minimum_duration_hours:
        raise ValidationError(
            f"Reservation must last at least {settings.minimum_duration_hours} hour(s).",
            fields=["startHour", "endHour"],
        )
    status = parse_status(fields["status"])

    remarks = fields.get("remarks", "")
    if not isinstance(remarks, str):
        raise ValidationError("remarks must be text.", fields=["remarks"])

    return ReservationRequest(
        venue_id=fields["venueId"],
        activity_id=fields["activityId"],
        date=target_date,
        start_hour=start_hour,
        end_hour=end_hour,
        status=status,
        resource_id=fields.get("resourceId"),
        actor_id=fields.get("actorId"),
        remarks=remarks,
    )


def recheck_reservation_request(request: ReservationRequest, settings: AllocationSettings) -> ReservationRequest:
    """Run a request built in code through the same checks as a client payload."""
    payload = {
        "venueId": request.venue_id,
        "activityId": request.activity_id,
        "date": request.date,
        "startHour": request.start_hour,
        "endHour": request.end_hour,
        "status": request.status,
        "resourceId": request.resource_id,
        "remarks": request.remarks,
    }
    return validate_reservation_request(payload, settings, actor_id=request.actor_id)


def validate_availability_query(payload: Mapping[str, Any]) -> AvailabilityQuery:
    fields = normalize_fields(payload)
    _require(fields, AVAILABILITY_REQUIRED)
    _check_ids(fields, ("venueId", "activityId"))
    return AvailabilityQuery(
        venue_id=fields["venueId"],
        activity_id=fields["activityId"],
        date=_parse_date(fields["date"]),
    )


def validate_identifier(value: Any, field: str) -> str:
    if not isinstance(value, str) or not _ID_RE.match(value):
        raise ValidationError(f"Invalid {field}.", fields=[field])
    return value


def parse_status(value: Any) -> ReservationStatus:
    if isinstance(value, ReservationStatus):
        return value
    if isinstance(value, str) and value in STATUS_ALIASES:
        return STATUS_ALIASES[value]
    allowed = ", ".join(status.value for status in ReservationStatus)
    raise ValidationError(f"Invalid status. Allowed statuses are: {allowed}.", fields=["status"])


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(fields: Mapping[str, Any], required: tuple[str, ...]) -> None:
    missing = [name for name in required if name not in fields]
    if missing:
        raise ValidationError(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required.", fields=missing)


def _check_ids(fields: Mapping[str, Any], names: tuple[str, ...]) -> None:
    bad = [name for name in names if name in fields and not (isinstance(fields[name], str) and _ID_RE.match(fields[name]))]
    if bad:
        raise ValidationError(f"Invalid {' or '.join(bad)}.", fields=bad)


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and _DATE_RE.match(value):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError("Invalid date format. Use YYYY-MM-DD.", fields=["date"])


def _parse_hour(value: Any, field: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    match = _TIME_RE.match(value) if isinstance(value, str) else None
    if match is None or match.group("minute") != "00":
        raise ValidationError(f"Invalid {field}. Must be in HH:00 format.", fields=[field])
    return int(match.group("hour"))


def _check_window(start_hour: int, end_hour: int, settings: AllocationSettings) -> None:
    opening, closing = settings.operating_start, settings.operating_end
    if not opening <= start_hour < closing or not opening < end_hour <= closing or end_hour <= start_hour:
        raise ValidationError(
            f"Times must be between {opening:02d}:00 and {closing:02d}:00, and endHour must be after startHour.",
            fields=["startHour", "endHour"],
        )
