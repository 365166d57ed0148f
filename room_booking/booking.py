from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

ANONYMIZED_EMAIL_PREFIX = "anonyme-"
ANONYMIZED_EMAIL_DOMAIN = "anonymized.local"

ACCOUNT_ACTIVE = "active"
ACCOUNT_ANONYMIZED = "anonymized"


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Return True when two time intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and exist_start < new_end


def anonymized_email(user_id: int) -> str:
    return f"{ANONYMIZED_EMAIL_PREFIX}{user_id}@{ANONYMIZED_EMAIL_DOMAIN}"


def is_anonymized_email(email: str | None) -> bool:
    """Tell whether an email lives in the namespace written by anonymization."""
    if not email:
        return False
    normalized = email.strip().lower()
    return normalized.startswith(ANONYMIZED_EMAIL_PREFIX) and normalized.endswith("@" + ANONYMIZED_EMAIL_DOMAIN)


@dataclass(frozen=True)
class Requester:
    """Authenticated identity resolved by the caller for one operation."""

    id: int


@dataclass(frozen=True)
class UserRecord:
    user_id: int
    email: str
    name: str
    lastname: str
    account_status: str
    created_at: datetime

    @property
    def is_anonymized(self) -> bool:
        return self.account_status == ACCOUNT_ANONYMIZED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user_id,
            "email": self.email,
            "name": self.name,
            "lastname": self.lastname,
            "account_status": self.account_status,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: int
    title: str
    start: datetime
    end: datetime
    owner_id: int
    created_at: datetime
    updated_at: datetime
    owner_name: str = ""
    owner_lastname: str = ""
    owner_email: str = ""
    owner_status: str = ACCOUNT_ACTIVE

    @property
    def owner_anonymized(self) -> bool:
        return self.owner_status == ACCOUNT_ANONYMIZED

    @property
    def owner_display_name(self) -> str:
        return f"{self.owner_name} {self.owner_lastname}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.reservation_id,
            "title": self.title,
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "user_id": self.owner_id,
            "name": self.owner_name,
            "lastname": self.owner_lastname,
            "email": self.owner_email,
            "owner_anonymized": self.owner_anonymized,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }
