from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Mapping

from .allocator import Allocator, SelectionStrategy
from .availability import AVAILABILITY_FORMS, FORM_FLAG, SlotAvailability, compute_availability, shape_availability
from .errors import NotFoundError, ValidationError
from .settings import AllocationSettings
from .validation import (
    ReservationRequest,
    recheck_reservation_request,
    validate_availability_query,
    validate_identifier,
    validate_reservation_request,
)
from .yaml_store import ReservationRecord, ReservationYamlRepository, ResourceRecord

ActorLookup = Callable[[str], Mapping[str, Any] | None]


@dataclass(frozen=True)
class ReservationView:
    record: ReservationRecord
    resource: dict[str, Any]
    actor: dict[str, Any] | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservationId": self.record.reservation_id,
            "venueId": self.record.venue_id,
            "activityId": self.record.activity_id,
            "date": self.record.date.isoformat(),
            "startHour": self.record.start_hour,
            "endHour": self.record.end_hour,
            "status": self.record.status.value,
            "remarks": self.record.remarks,
            "resource": self.resource,
            "actor": self.actor,
            "createdAt": self.record.created_at.isoformat(timespec="seconds"),
            "updatedAt": self.record.updated_at.isoformat(timespec="seconds"),
        }


class ReservationService:
    """Entry points used by the HTTP and MCP layers.

    Every operation validates its input first; errors from the allocator and
    the store propagate unchanged.
    """

    def __init__(
        self,
        repository: ReservationYamlRepository,
        settings: AllocationSettings | None = None,
        selection: SelectionStrategy | None = None,
        clock: Callable[[], datetime] | None = None,
        actor_lookup: ActorLookup | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or AllocationSettings()
        self._clock: Callable[[], datetime] = clock or datetime.now
        self._allocator = Allocator(repository, selection=selection, clock=self._clock)
        self._actor_lookup = actor_lookup

    @classmethod
    def from_settings(
        cls,
        settings: AllocationSettings,
        selection: SelectionStrategy | None = None,
        clock: Callable[[], datetime] | None = None,
        actor_lookup: ActorLookup | None = None,
    ) -> "ReservationService":
        repository = ReservationYamlRepository.from_settings(settings, clock=clock)
        return cls(repository, settings, selection=selection, clock=clock, actor_lookup=actor_lookup)

    def create_reservation(
        self,
        payload: Mapping[str, Any] | ReservationRequest,
        actor_id: str | None = None,
    ) -> ReservationView:
        if isinstance(payload, ReservationRequest):
            request = recheck_reservation_request(payload, self.settings)
        else:
            request = validate_reservation_request(payload, self.settings, actor_id=actor_id)
        record = self._allocator.allocate(request)
        return self.project(record)

    def get_available_slots(
        self,
        venue_id: str,
        activity_id: str,
        target_date: str | date,
        form: str = FORM_FLAG,
    ) -> list[SlotAvailability]:
        query = validate_availability_query({"venueId": venue_id, "activityId": activity_id, "date": target_date})
        if form not in AVAILABILITY_FORMS:
            raise ValidationError(f"Invalid form. Use one of: {', '.join(AVAILABILITY_FORMS)}.", fields=["form"])

        pool = self.repository.find_resource_pool(query.venue_id, query.activity_id)
        if not pool:
            raise NotFoundError(
                "No resources found for the specified venue and activity.",
                fields=["venueId", "activityId"],
            )

        pool_ids = [resource.resource_id for resource in pool]
        ignored = self.settings.availability_ignored_statuses
        reservations = self.repository.find_overlapping(
            pool_ids,
            query.date,
            self.settings.operating_start,
            self.settings.operating_end,
            excluded_statuses=ignored,
        )
        rows = compute_availability(
            pool_ids,
            reservations,
            self.settings.operating_start,
            self.settings.operating_end,
            ignored_statuses=ignored,
        )
        return shape_availability(rows, form)

    def list_reservations(self, venue_id: str, activity_id: str, target_date: str | date) -> list[ReservationView]:
        query = validate_availability_query({"venueId": venue_id, "activityId": activity_id, "date": target_date})
        self.repository.complete_elapsed(self._clock())

        resources = self._resource_index()
        records = [
            record
            for record in self.repository.get_reservations()
            if record.venue_id == query.venue_id and record.activity_id == query.activity_id and record.date == query.date
        ]
        records.sort(key=lambda record: (record.start_hour, _resource_name(resources, record.resource_id)))
        return [self.project(record, resources) for record in records]

    def list_actor_reservations(self, actor_id: str) -> list[ReservationView]:
        validate_identifier(actor_id, "actorId")
        resources = self._resource_index()
        records = sorted(
            self.repository.find_actor_reservations(actor_id),
            key=lambda record: (-record.date.toordinal(), record.start_hour),
        )
        return [self.project(record, resources) for record in records]

    def cancel_reservation(self, reservation_id: str) -> ReservationView:
        validate_identifier(reservation_id, "reservationId")
        deleted = self.repository.delete_reservation(reservation_id)
        return self.project(deleted)

    def complete_elapsed(self, now: datetime | None = None) -> int:
        return self.repository.complete_elapsed(now or self._clock())

    def list_resource_pool(self, venue_id: str, activity_id: str) -> list[ResourceRecord]:
        validate_identifier(venue_id, "venueId")
        validate_identifier(activity_id, "activityId")
        return self.repository.find_resource_pool(venue_id, activity_id)

    def project(
        self,
        record: ReservationRecord,
        resources: Mapping[str, ResourceRecord] | None = None,
    ) -> ReservationView:
        if resources is None:
            resource = self.repository.get_resource(record.resource_id)
        else:
            resource = resources.get(record.resource_id)

        actor: dict[str, Any] | None = None
        if record.actor_id is not None:
            actor = {"id": record.actor_id}
            if self._actor_lookup is not None:
                details = self._actor_lookup(record.actor_id)
                if details:
                    actor.update({key: value for key, value in details.items() if key != "id"})

        return ReservationView(
            record=record,
            resource={"id": record.resource_id, "name": resource.name if resource else None},
            actor=actor,
        )

    def _resource_index(self) -> dict[str, ResourceRecord]:
        return {resource.resource_id: resource for resource in self.repository.get_resources()}


def _resource_name(resources: Mapping[str, ResourceRecord], resource_id: str) -> str:
    resource = resources.get(resource_id)
    return resource.name if resource else ""
