from __future__ import annotations


class BookingError(Exception):
    """Base class for every outcome the booking core reports to its caller."""

    code = "booking_error"
    default_message = "The booking request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BookingError, ValueError):
    code = "validation_error"
    default_message = "The booking request is not valid."


class InvalidInputError(ValidationError):
    code = "invalid_input"
    default_message = "Title, start date and end date are required."


class PastDateError(ValidationError):
    code = "past_date"
    default_message = "Reservation start time cannot be in the past."


class TooShortError(ValidationError):
    code = "too_short"
    default_message = "Reservation must last at least 1 hour."


class OutsideBusinessHoursError(ValidationError):
    code = "outside_business_hours"
    default_message = "Reservation must be within business hours (08:00-19:00)."


class WeekendError(ValidationError):
    code = "weekend"
    default_message = "Reservations are only allowed Monday to Friday."


class ConflictError(BookingError):
    code = "conflict"
    default_message = "This time slot is already booked."


class ForbiddenError(BookingError):
    code = "forbidden"
    default_message = "You can only change your own reservations."


class NotFoundError(BookingError):
    code = "not_found"
    default_message = "Reservation not found."


class ReservationStorageError(BookingError, RuntimeError):
    """Storage failed (timeout, lock contention, lost connection).

    The core performs no retries; callers decide whether to try again.
    """

    code = "storage_unavailable"
    default_message = "Reservation storage is temporarily unavailable. Please retry."

    def __init__(self, message: str | None = None, retriable: bool = True) -> None:
        super().__init__(message)
        self.retriable = retriable


StorageError = ReservationStorageError
