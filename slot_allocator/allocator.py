from __future__ import annotations

from datetime import datetime
from itertools import count
from typing import Callable, Protocol, Sequence
import random
import threading
from uuid import uuid4

from .errors import ConflictError, InvariantViolation, NotFoundError, ValidationError
from .validation import ReservationRequest
from .yaml_store import ReservationRecord, ReservationYamlRepository, ResourceRecord


class SelectionStrategy(Protocol):
    def pick(self, free_set: Sequence[str]) -> str:
        ...


class RandomSelection:
    """Uniform choice over the free set. Pass a seeded Random for repeatable picks."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._lock = threading.Lock()

    def pick(self, free_set: Sequence[str]) -> str:
        with self._lock:
            return self._rng.choice(list(free_set))


class FirstFreeSelection:
    def pick(self, free_set: Sequence[str]) -> str:
        return free_set[0]


class RoundRobinSelection:
    def __init__(self) -> None:
        self._counter = count()
        self._lock = threading.Lock()

    def pick(self, free_set: Sequence[str]) -> str:
        with self._lock:
            turn = next(self._counter)
        return free_set[turn % len(free_set)]


class Allocator:
    def __init__(
        self,
        repository: ReservationYamlRepository,
        selection: SelectionStrategy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._selection: SelectionStrategy = selection or RandomSelection()
        self._clock: Callable[[], datetime] = clock or datetime.now

    def allocate(self, request: ReservationRequest) -> ReservationRecord:
        pool = self._repository.find_resource_pool(request.venue_id, request.activity_id)
        if request.resource_id is not None:
            return self._allocate_explicit(request, pool)
        return self._allocate_any(request, pool)

    def _allocate_explicit(self, request: ReservationRequest, pool: list[ResourceRecord]) -> ReservationRecord:
        resource_id = request.resource_id
        if resource_id not in {resource.resource_id for resource in pool}:
            if self._repository.get_resource(resource_id) is None:
                raise NotFoundError("Resource not found.", fields=["resourceId"])
            raise ValidationError(
                "Resource does not belong to the requested venue and activity.",
                fields=["resourceId", "venueId", "activityId"],
            )

        clashing = self._repository.find_overlapping([resource_id], request.date, request.start_hour, request.end_hour)
        if clashing:
            raise ConflictError(
                "Resource unavailable for requested window.",
                fields=["resourceId", "startHour", "endHour"],
            )
        return self._repository.insert_if_free(self._build(request, resource_id))

    def _allocate_any(self, request: ReservationRequest, pool: list[ResourceRecord]) -> ReservationRecord:
        if not pool:
            raise NotFoundError(
                "No resources found for the specified venue and activity.",
                fields=["venueId", "activityId"],
            )

        pool_ids = [resource.resource_id for resource in pool]
        busy = {
            record.resource_id
            for record in self._repository.find_overlapping(pool_ids, request.date, request.start_hour, request.end_hour)
        }
        free_set = [resource_id for resource_id in pool_ids if resource_id not in busy]

        # A concurrent writer may take the chosen resource between the read
        # above and the insert; drop it and choose again from what is left.
        while free_set:
            chosen = self._selection.pick(tuple(free_set))
            if chosen not in free_set:
                self._repository.record_event(
                    "INVARIANT_VIOLATION",
                    {
                        "reason": "selection outside free set",
                        "chosen": chosen,
                        "free_set": list(free_set),
                        "date": request.date.isoformat(),
                        "start_hour": request.start_hour,
                        "end_hour": request.end_hour,
                    },
                )
                raise InvariantViolation("Allocator selected a resource that is not free.", fields=["resourceId"])
            try:
                return self._repository.insert_if_free(self._build(request, chosen))
            except ConflictError:
                free_set.remove(chosen)

        raise ConflictError(
            "No resources available for the selected time slot.",
            fields=["startHour", "endHour"],
        )

    def _build(self, request: ReservationRequest, resource_id: str) -> ReservationRecord:
        now = self._clock()
        return ReservationRecord(
            reservation_id=uuid4().hex,
            resource_id=resource_id,
            venue_id=request.venue_id,
            activity_id=request.activity_id,
            actor_id=request.actor_id,
            date=request.date,
            start_hour=request.start_hour,
            end_hour=request.end_hour,
            status=request.status,
            created_at=now,
            updated_at=now,
            remarks=request.remarks,
        )
