from .allocator import Allocator, FirstFreeSelection, RandomSelection, RoundRobinSelection, SelectionStrategy
from .availability import SlotAvailability, compute_availability, shape_availability
from .booking import HourRange, ReservationStatus, overlaps
from .errors import (
	AllocationError,
	ConflictError,
	InvariantViolation,
	NotFoundError,
	TransientStoreError,
	ValidationError,
)
from .service import ReservationService, ReservationView
from .settings import AllocationSettings, load_settings
from .time_grid import Slot, enumerate_slots
from .validation import ReservationRequest, validate_reservation_request
from .yaml_store import ReservationRecord, ReservationYamlRepository, ResourceRecord

__all__ = [
	"Allocator",
	"FirstFreeSelection",
	"RandomSelection",
	"RoundRobinSelection",
	"SelectionStrategy",
	"SlotAvailability",
	"compute_availability",
	"shape_availability",
	"HourRange",
	"ReservationStatus",
	"overlaps",
	"AllocationError",
	"ConflictError",
	"InvariantViolation",
	"NotFoundError",
	"TransientStoreError",
	"ValidationError",
	"ReservationService",
	"ReservationView",
	"AllocationSettings",
	"load_settings",
	"Slot",
	"enumerate_slots",
	"ReservationRequest",
	"validate_reservation_request",
	"ReservationRecord",
	"ReservationYamlRepository",
	"ResourceRecord",
]
