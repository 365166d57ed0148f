from __future__ import annotations

from .booking import ReservationRecord
from .errors import ForbiddenError


def can_update(reservation: ReservationRecord, requester_id: int) -> bool:
    return reservation.owner_id == requester_id


def can_delete(reservation: ReservationRecord, requester_id: int) -> bool:
    """Owners may delete their bookings; anyone may clear an anonymized owner's."""
    return reservation.owner_id == requester_id or reservation.owner_anonymized


def ensure_can_update(reservation: ReservationRecord, requester_id: int) -> None:
    if not can_update(reservation, requester_id):
        raise ForbiddenError("You can only modify your own reservations.")


def ensure_can_delete(reservation: ReservationRecord, requester_id: int) -> None:
    if not can_delete(reservation, requester_id):
        raise ForbiddenError("You can only delete your own reservations.")
