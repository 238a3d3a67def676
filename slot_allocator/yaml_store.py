from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator
import os
import threading
import time
from uuid import uuid4

import yaml

from .booking import HourRange, ReservationStatus
from .errors import ConflictError, NotFoundError, TransientStoreError
from .settings import AllocationSettings

LOCK_POLL_SECONDS = 0.01


@dataclass(frozen=True)
class ResourceRecord:
    resource_id: str
    venue_id: str
    activity_id: str
    name: str
    created_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "resource_id": self.resource_id,
            "venue_id": self.venue_id,
            "activity_id": self.activity_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ResourceRecord":
        return ResourceRecord(
            resource_id=str(data["resource_id"]),
            venue_id=str(data["venue_id"]),
            activity_id=str(data["activity_id"]),
            name=str(data.get("name") or ""),
            created_at=datetime.fromisoformat(str(data["created_at"])),
        )


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: str
    resource_id: str
    venue_id: str
    activity_id: str
    actor_id: str | None
    date: date
    start_hour: int
    end_hour: int
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime
    remarks: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.date, datetime) or not isinstance(self.date, date):
            raise ValueError(f"Reservation date must be a calendar day, got {self.date!r}.")
        HourRange(self.start_hour, self.end_hour)

    @property
    def hours(self) -> HourRange:
        return HourRange(self.start_hour, self.end_hour)

    def ends_at(self) -> datetime:
        return datetime.combine(self.date, datetime.min.time()) + timedelta(hours=self.end_hour)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "resource_id": self.resource_id,
            "venue_id": self.venue_id,
            "activity_id": self.activity_id,
            "actor_id": self.actor_id,
            "date": self.date.isoformat(),
            "start_hour": self.start_hour,
            "end_hour": self.end_hour,
            "status": self.status.value,
            "remarks": self.remarks,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ReservationRecord":
        return ReservationRecord(
            reservation_id=str(data["reservation_id"]),
            resource_id=str(data["resource_id"]),
            venue_id=str(data["venue_id"]),
            activity_id=str(data["activity_id"]),
            actor_id=(str(data["actor_id"]) if data.get("actor_id") is not None else None),
            date=date.fromisoformat(str(data["date"])),
            start_hour=int(data["start_hour"]),
            end_hour=int(data["end_hour"]),
            status=ReservationStatus(str(data["status"])),
            remarks=str(data.get("remarks") or ""),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


class StoreLease:
    """Store-wide mutex: an in-process lock plus an exclusive lock file.

    The lock file serializes writers in separate processes sharing one data
    directory. Each holder writes a unique token into the file and only
    removes a lock file that still carries its own token. A lock file older
    than ``stale_after`` seconds is assumed to belong to a dead holder; it is
    claimed by renaming it aside, so only one waiter can break it.
    """

    def __init__(self, path: Path, timeout: float, stale_after: float) -> None:
        self.path = path
        self.timeout = timeout
        self.stale_after = stale_after
        self._thread_lock = threading.Lock()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        deadline = time.monotonic() + self.timeout
        if not self._thread_lock.acquire(timeout=self.timeout):
            raise TransientStoreError("Timed out waiting for the reservation store lock.")
        try:
            token, broke_stale = self._acquire_file(deadline)
            try:
                yield broke_stale
            finally:
                self._release_file(token)
        finally:
            self._thread_lock.release()

    def _acquire_file(self, deadline: float) -> tuple[str, bool]:
        token = f"{os.getpid()} {uuid4().hex}\n"
        broke_stale = False
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if self._is_stale(self.path) and self._break_stale():
                    broke_stale = True
                    continue
                if time.monotonic() >= deadline:
                    raise TransientStoreError("Timed out waiting for the reservation store lock file.")
                time.sleep(LOCK_POLL_SECONDS)
                continue
            except OSError as error:
                raise TransientStoreError(f"Could not create lock file: {self.path}") from error

            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(token)
            return token, broke_stale

    def _break_stale(self) -> bool:
        claimed = self.path.with_name(f"{self.path.name}.{uuid4().hex}.stale")
        try:
            os.rename(self.path, claimed)
        except FileNotFoundError:
            return False
        except OSError as error:
            raise TransientStoreError(f"Could not break stale lock file: {self.path}") from error

        try:
            if self._is_stale(claimed):
                return True
            # A live holder replaced the stale file before the rename: give its lock back.
            try:
                os.link(claimed, self.path)
            except FileExistsError:
                pass  # a newer lock is already in place
            return False
        finally:
            claimed.unlink(missing_ok=True)

    def _release_file(self, token: str) -> None:
        try:
            current = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as error:
            raise TransientStoreError(f"Could not release lock file: {self.path}") from error
        if current == token:
            self.path.unlink(missing_ok=True)

    def _is_stale(self, path: Path) -> bool:
        try:
            modified = path.stat().st_mtime
        except FileNotFoundError:
            return False
        return time.time() - modified > self.stale_after


class ReservationYamlRepository:
    def __init__(
        self,
        base_dir: str | Path = "data",
        lock_timeout_seconds: float = 5.0,
        stale_lock_seconds: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.resources_file = self.base_dir / "resources.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self.lock_file = self.base_dir / ".store.lock"
        self._clock: Callable[[], datetime] = clock or datetime.now
        self._lease = StoreLease(self.lock_file, lock_timeout_seconds, stale_lock_seconds)
        self._ensure_files()

    @classmethod
    def from_settings(
        cls,
        settings: AllocationSettings,
        clock: Callable[[], datetime] | None = None,
    ) -> "ReservationYamlRepository":
        return cls(
            settings.data_dir,
            lock_timeout_seconds=settings.lock_timeout_seconds,
            stale_lock_seconds=settings.stale_lock_seconds,
            clock=clock,
        )

    def _ensure_files(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for path in (self.resources_file, self.reservations_file, self.log_file):
                if not path.exists():
                    path.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise TransientStoreError(f"Could not prepare data directory: {self.base_dir}") from error

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lease.hold() as broke_stale:
            if broke_stale:
                self._log_event("STALE_LOCK_BROKEN", {"lock_file": self.lock_file.name})
            yield

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            raise TransientStoreError(f"Could not read YAML file: {path.name}") from error

        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransientStoreError(f"Top-level YAML is not a list: {path.name}")
        for index, row in enumerate(payload):
            if not isinstance(row, dict):
                raise TransientStoreError(f"Row {index} of {path.name} is not a mapping")
        return payload

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise TransientStoreError(f"Failed to write YAML file: {path.name}") from error
        finally:
            if temp_path.is_file():
                temp_path.unlink(missing_ok=True)

    def _event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> dict[str, Any]:
        timestamp = (event_time or self._clock()).isoformat(timespec="seconds")
        return {"event_time": timestamp, "event_type": event_type, "payload": payload}

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        events = self._read_yaml_list(self.log_file)
        events.append(self._event(event_type, payload, event_time))
        self._write_yaml_list(self.log_file, events)

    def _commit(
        self,
        path: Path,
        rows: list[dict[str, Any]],
        event_type: str,
        payload: dict[str, Any],
        event_time: datetime | None = None,
    ) -> None:
        """Write ``rows`` to ``path`` together with its audit event, or neither.

        The event goes first; if the data write then fails the log is put back
        as it was, so a failed commit leaves no trace in either file.
        """
        events = self._read_yaml_list(self.log_file)
        self._write_yaml_list(self.log_file, [*events, self._event(event_type, payload, event_time)])
        try:
            self._write_yaml_list(path, rows)
        except TransientStoreError:
            self._write_yaml_list(self.log_file, events)
            raise

    def _load_reservations(self) -> list[ReservationRecord]:
        rows = self._read_yaml_list(self.reservations_file)
        try:
            return [ReservationRecord.from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError) as error:
            raise TransientStoreError(f"Malformed reservation row in {self.reservations_file.name}: {error}") from error

    def _commit_reservations(
        self,
        records: Iterable[ReservationRecord],
        event_type: str,
        payload: dict[str, Any],
        event_time: datetime | None = None,
    ) -> None:
        rows = [record.to_dict() for record in records]
        self._commit(self.reservations_file, rows, event_type, payload, event_time)

    def record_event(self, event_type: str, payload: dict[str, Any]) -> None:
        with self._locked():
            self._log_event(event_type, payload)

    def get_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)

    def get_resources(self) -> list[ResourceRecord]:
        rows = self._read_yaml_list(self.resources_file)
        try:
            return [ResourceRecord.from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError) as error:
            raise TransientStoreError(f"Malformed resource row in {self.resources_file.name}: {error}") from error

    def get_resource(self, resource_id: str) -> ResourceRecord | None:
        for resource in self.get_resources():
            if resource.resource_id == resource_id:
                return resource
        return None

    def add_resource(
        self,
        venue_id: str,
        activity_id: str,
        name: str,
        resource_id: str | None = None,
    ) -> ResourceRecord:
        record = ResourceRecord(
            resource_id=resource_id or uuid4().hex,
            venue_id=venue_id,
            activity_id=activity_id,
            name=name,
            created_at=self._clock(),
        )
        with self._locked():
            rows = self._read_yaml_list(self.resources_file)
            if any(str(row.get("resource_id")) == record.resource_id for row in rows):
                raise ConflictError(f"Resource {record.resource_id} already exists.", fields=["resourceId"])
            rows.append(record.to_dict())
            self._commit(self.resources_file, rows, "RESOURCE_ADDED", record.to_dict())
        return record

    def find_resource_pool(self, venue_id: str, activity_id: str) -> list[ResourceRecord]:
        return [
            resource
            for resource in self.get_resources()
            if resource.venue_id == venue_id and resource.activity_id == activity_id
        ]

    def get_reservations(self) -> list[ReservationRecord]:
        return self._load_reservations()

    def get_reservation(self, reservation_id: str) -> ReservationRecord | None:
        for record in self._load_reservations():
            if record.reservation_id == reservation_id:
                return record
        return None

    def find_overlapping(
        self,
        resource_ids: Iterable[str],
        target_date: date,
        start_hour: int,
        end_hour: int,
        excluded_statuses: Iterable[ReservationStatus] = (),
    ) -> list[ReservationRecord]:
        wanted = set(resource_ids)
        excluded = set(excluded_statuses)
        window = HourRange(start_hour, end_hour)
        return [
            record
            for record in self._load_reservations()
            if record.resource_id in wanted
            and record.date == target_date
            and record.status not in excluded
            and record.hours.overlaps(window)
        ]

    def find_actor_reservations(self, actor_id: str) -> list[ReservationRecord]:
        return [record for record in self._load_reservations() if record.actor_id == actor_id]

    def insert_if_free(self, record: ReservationRecord) -> ReservationRecord:
        """Persist ``record`` unless its resource is already taken for an overlapping window.

        The overlap check and the write happen under the store lease, so two
        writers can never both observe the window as free.
        """
        with self._locked():
            existing = self._load_reservations()
            if any(row.reservation_id == record.reservation_id for row in existing):
                raise ConflictError(f"Reservation {record.reservation_id} already exists.")

            clashing = [
                row
                for row in existing
                if row.resource_id == record.resource_id
                and row.date == record.date
                and row.hours.overlaps(record.hours)
            ]
            if clashing:
                self._log_event(
                    "RESERVATION_REJECTED",
                    {
                        "resource_id": record.resource_id,
                        "date": record.date.isoformat(),
                        "start_hour": record.start_hour,
                        "end_hour": record.end_hour,
                        "clashing_ids": [row.reservation_id for row in clashing],
                    },
                )
                raise ConflictError(
                    "Resource unavailable for requested window.",
                    fields=["resourceId", "startHour", "endHour"],
                )

            existing.append(record)
            self._commit_reservations(existing, "RESERVATION_CREATED", record.to_dict())
        return record

    def delete_reservation(self, reservation_id: str) -> ReservationRecord:
        with self._locked():
            existing = self._load_reservations()
            remaining = [row for row in existing if row.reservation_id != reservation_id]
            if len(remaining) == len(existing):
                raise NotFoundError(f"Reservation {reservation_id} not found.", fields=["reservationId"])

            deleted = next(row for row in existing if row.reservation_id == reservation_id)
            self._commit_reservations(
                remaining,
                "RESERVATION_CANCELLED",
                {
                    "reservation_id": deleted.reservation_id,
                    "resource_id": deleted.resource_id,
                    "date": deleted.date.isoformat(),
                    "start_hour": deleted.start_hour,
                    "end_hour": deleted.end_hour,
                },
            )
        return deleted

    def complete_elapsed(self, now: datetime | None = None) -> int:
        effective_now = now or self._clock()
        with self._locked():
            existing = self._load_reservations()
            completed_ids: list[str] = []
            updated: list[ReservationRecord] = []
            for record in existing:
                if record.status != ReservationStatus.COMPLETED and record.ends_at() <= effective_now:
                    record = replace(record, status=ReservationStatus.COMPLETED, updated_at=effective_now)
                    completed_ids.append(record.reservation_id)
                updated.append(record)

            if not completed_ids:
                return 0

            self._commit_reservations(updated, "RESERVATIONS_COMPLETED", {"reservation_ids": completed_ids}, effective_now)
        return len(completed_ids)
