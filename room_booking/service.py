from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

from .booking import ReservationRecord, UserRecord, is_anonymized_email
from .errors import (
    BookingError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from .policy import ensure_can_delete, ensure_can_update
from .sql_store import ReservationSqlRepository
from .validation import parse_timestamp, validate_time_window, validate_title, week_start

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Paris"


class ReservationService:
    """Entry points for booking, editing, and cancelling reservations.

    Every operation receives the acting user's id explicitly and runs its
    checks and writes inside a single repository transaction.
    """

    def __init__(
        self,
        repository: ReservationSqlRepository,
        timezone: str | ZoneInfo = DEFAULT_TIMEZONE,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.zone = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
        self._clock = now_provider or (lambda: datetime.now(self.zone))

    def now(self) -> datetime:
        return parse_timestamp(self._clock(), self.zone)

    def create_reservation(self, title: Any, start: Any, end: Any, owner_id: int) -> ReservationRecord:
        now = self.now()
        try:
            title = validate_title(title)
            start, end = validate_time_window(start, end, now, self.zone)
            with self.repository.transaction() as unit:
                if unit.get_user(owner_id) is None:
                    raise NotFoundError("User not found.")
                if unit.has_conflict(start, end):
                    raise ConflictError()
                created = unit.create(title, start, end, owner_id, now)
        except BookingError as error:
            logger.info("Reservation rejected for user %s: %s", owner_id, error.code)
            raise

        logger.info(
            "Reservation %s created by user %s (%s - %s)",
            created.reservation_id,
            owner_id,
            created.start.isoformat(timespec="minutes"),
            created.end.isoformat(timespec="minutes"),
        )
        return created

    def update_reservation(
        self,
        reservation_id: int,
        title: Any,
        start: Any,
        end: Any,
        requester_id: int,
    ) -> ReservationRecord:
        now = self.now()
        try:
            with self.repository.transaction() as unit:
                current = unit.find_by_id(reservation_id)
                if current is None:
                    raise NotFoundError()
                ensure_can_update(current, requester_id)

                title = validate_title(title)
                start, end = validate_time_window(start, end, now, self.zone)
                if unit.has_conflict(start, end, exclude_id=reservation_id):
                    raise ConflictError()
                updated = unit.update(reservation_id, title, start, end, now)
                if updated is None:
                    raise NotFoundError()
        except BookingError as error:
            logger.info("Update of reservation %s rejected for user %s: %s", reservation_id, requester_id, error.code)
            raise

        logger.info("Reservation %s updated by user %s", reservation_id, requester_id)
        return updated

    def delete_reservation(self, reservation_id: int, requester_id: int) -> None:
        now = self.now()
        try:
            with self.repository.transaction() as unit:
                current = unit.find_by_id(reservation_id)
                if current is None:
                    raise NotFoundError()
                ensure_can_delete(current, requester_id)
                if not unit.delete(reservation_id, now, requester_id=requester_id):
                    raise NotFoundError()
        except BookingError as error:
            logger.info("Deletion of reservation %s rejected for user %s: %s", reservation_id, requester_id, error.code)
            raise

        logger.info("Reservation %s deleted by user %s", reservation_id, requester_id)

    def list_week(self, any_date_in_week: date | datetime | str | None = None) -> list[ReservationRecord]:
        return self.repository.find_by_week(week_start(self._resolve_day(any_date_in_week)))

    def list_for_user(self, user_id: int) -> list[ReservationRecord]:
        return self.repository.find_by_user_id(user_id)

    def get_by_id(self, reservation_id: int) -> ReservationRecord:
        reservation = self.repository.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError()
        return reservation

    def register_user(self, email: Any, name: Any, lastname: Any) -> UserRecord:
        if not all(isinstance(value, str) and value.strip() for value in (email, name, lastname)):
            raise InvalidInputError("Email, name and last name are required.")

        normalized_email = email.strip().lower()
        if "@" not in normalized_email:
            raise InvalidInputError("Email address is not valid.")
        if is_anonymized_email(normalized_email):
            raise InvalidInputError("This email address is reserved.")

        with self.repository.transaction() as unit:
            user = unit.add_user(normalized_email, name.strip(), lastname.strip(), self.now())
        logger.info("User %s registered", user.user_id)
        return user

    def get_user(self, user_id: int) -> UserRecord:
        user = self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def anonymize_user(self, user_id: int) -> UserRecord:
        with self.repository.transaction() as unit:
            user = unit.anonymize_user(user_id, self.now())
        if user is None:
            raise NotFoundError("User not found.")
        logger.info("User %s anonymized; reservations kept", user_id)
        return user

    def _resolve_day(self, value: date | datetime | str | None) -> date:
        if value is None:
            return self.now().date()
        if isinstance(value, datetime):
            return parse_timestamp(value, self.zone).date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                return parse_timestamp(value, self.zone).date()
        raise InvalidInputError("A date is required.")
