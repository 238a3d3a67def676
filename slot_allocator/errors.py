from __future__ import annotations

from typing import Sequence


class AllocationError(Exception):
    """Base class for every failure the allocation core reports to callers."""

    kind = "allocation_error"
    status_code = 500

    def __init__(self, message: str, fields: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.fields = tuple(fields)

    def to_dict(self) -> dict[str, object]:
        return {
            "ok": False,
            "error": self.kind,
            "message": self.message,
            "fields": list(self.fields),
        }


class ValidationError(AllocationError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(AllocationError):
    kind = "not_found"
    status_code = 404


class ConflictError(AllocationError):
    kind = "conflict"
    status_code = 409


class TransientStoreError(AllocationError):
    """Storage timed out or could not be read/written. Safe to retry later."""

    kind = "store_unavailable"
    status_code = 503


class InvariantViolation(AllocationError):
    kind = "invariant_violation"
    status_code = 500
