from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any
import os

import yaml

from .booking import ReservationStatus

CONFIG_ENV_VAR = "SLOT_ALLOCATOR_CONFIG"
DEFAULT_OPERATING_START = 4
DEFAULT_OPERATING_END = 22


@dataclass(frozen=True)
class AllocationSettings:
    operating_start: int = DEFAULT_OPERATING_START
    operating_end: int = DEFAULT_OPERATING_END
    minimum_duration_hours: int = 1
    # Statuses that leave a slot free when counting availability.
    # Allocation itself treats every status as occupying.
    availability_ignored_statuses: frozenset[ReservationStatus] = field(
        default_factory=lambda: frozenset({ReservationStatus.BLOCKED})
    )
    lock_timeout_seconds: float = 5.0
    stale_lock_seconds: float = 30.0
    data_dir: str = "data"

    def __post_init__(self) -> None:
        if not 0 <= self.operating_start < self.operating_end <= 24:
            raise ValueError("Operating window must satisfy 0 <= operating_start < operating_end <= 24.")
        if self.minimum_duration_hours < 1:
            raise ValueError("minimum_duration_hours must be at least 1.")
        if self.minimum_duration_hours > self.operating_end - self.operating_start:
            raise ValueError("minimum_duration_hours does not fit in the operating window.")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be greater than zero.")
        if self.stale_lock_seconds <= 0:
            raise ValueError("stale_lock_seconds must be greater than zero.")

    @property
    def occupying_statuses(self) -> frozenset[ReservationStatus]:
        return frozenset(ReservationStatus) - self.availability_ignored_statuses


def load_settings(path: str | Path | None = None, **overrides: Any) -> AllocationSettings:
    """Build settings from an optional YAML file, then apply keyword overrides.

    When no path is given the file named by SLOT_ALLOCATOR_CONFIG is used, if set.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None

    values: dict[str, Any] = {}
    if path is not None:
        values.update(_read_config_file(Path(path)))
    values.update(overrides)

    settings = AllocationSettings()
    if not values:
        return settings
    return replace(settings, **_coerce(values))


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as error:
        raise ValueError(f"Could not read config file: {path}") from error
    except yaml.YAMLError as error:
        raise ValueError(f"Config file is not valid YAML: {path}") from error

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("Config file must contain a mapping at the top level.")
    return payload


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    known = {item.name for item in fields(AllocationSettings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(unknown)}")

    coerced = dict(values)
    try:
        for name in ("operating_start", "operating_end", "minimum_duration_hours"):
            if name in coerced:
                coerced[name] = _whole_number(coerced[name], name)
        for name in ("lock_timeout_seconds", "stale_lock_seconds"):
            if name in coerced:
                coerced[name] = float(coerced[name])
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid numeric setting: {error}") from error

    if "availability_ignored_statuses" in coerced:
        raw = coerced["availability_ignored_statuses"] or []
        if isinstance(raw, str):
            raw = [raw]
        try:
            coerced["availability_ignored_statuses"] = frozenset(ReservationStatus(item) for item in raw)
        except ValueError as error:
            raise ValueError(f"Unknown status in availability_ignored_statuses: {error}") from error
    if "data_dir" in coerced:
        coerced["data_dir"] = str(coerced["data_dir"])
    return coerced


def _whole_number(value: Any, name: str) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    return int(value)
