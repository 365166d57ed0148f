from .booking import (
	Requester,
	ReservationRecord,
	UserRecord,
	anonymized_email,
	has_time_overlap,
	is_anonymized_email,
)
from .config import BookingSettings, load_settings
from .errors import (
	BookingError,
	ConflictError,
	ForbiddenError,
	InvalidInputError,
	NotFoundError,
	OutsideBusinessHoursError,
	PastDateError,
	ReservationStorageError,
	StorageError,
	TooShortError,
	ValidationError,
	WeekendError,
)
from .service import ReservationService
from .sql_store import ReservationSqlRepository, ReservationUnitOfWork, create_storage_engine
from .validation import validate_time_window, validate_title, week_start

__all__ = [
	"Requester",
	"ReservationRecord",
	"UserRecord",
	"anonymized_email",
	"has_time_overlap",
	"is_anonymized_email",
	"BookingSettings",
	"load_settings",
	"BookingError",
	"ConflictError",
	"ForbiddenError",
	"InvalidInputError",
	"NotFoundError",
	"OutsideBusinessHoursError",
	"PastDateError",
	"ReservationStorageError",
	"StorageError",
	"TooShortError",
	"ValidationError",
	"WeekendError",
	"ReservationService",
	"ReservationSqlRepository",
	"ReservationUnitOfWork",
	"create_storage_engine",
	"validate_time_window",
	"validate_title",
	"week_start",
]
