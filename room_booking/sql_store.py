from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

import yaml
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    DDL,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    event,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import StaticPool

from .booking import (
    ACCOUNT_ACTIVE,
    ACCOUNT_ANONYMIZED,
    ReservationRecord,
    UserRecord,
    anonymized_email,
    has_time_overlap,
)
from .errors import ConflictError, ReservationStorageError
from .validation import TITLE_MAX_LENGTH, week_start

logger = logging.getLogger(__name__)

OVERLAP_GUARD_NAME = "reservations_no_overlap"
WORKING_DAYS_PER_WEEK = 5

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("lastname", String(100), nullable=False),
    Column("account_status", String(20), nullable=False, default=ACCOUNT_ACTIVE),
    Column("created_at", DateTime, nullable=False),
)

reservations = Table(
    "reservations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(TITLE_MAX_LENGTH), nullable=False),
    Column("start_time", DateTime, nullable=False),
    Column("end_time", DateTime, nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    CheckConstraint("end_time > start_time", name="ck_reservations_interval"),
    Index("ix_reservations_start_end", "start_time", "end_time"),
    Index("ix_reservations_user_id", "user_id"),
)

reservation_events = Table(
    "reservation_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_time", DateTime, nullable=False),
    Column("event_type", String(50), nullable=False),
    Column("payload", Text, nullable=False),
)

# Database-level overlap guard, so two transactions that both passed the
# conflict read can never both commit.
for _operation, _extra in (("INSERT", ""), ("UPDATE", " AND id != NEW.id")):
    event.listen(
        reservations,
        "after_create",
        DDL(
            f"CREATE TRIGGER IF NOT EXISTS {OVERLAP_GUARD_NAME}_{_operation.lower()} "
            f"BEFORE {_operation} ON reservations "
            "WHEN EXISTS (SELECT 1 FROM reservations "
            f"WHERE start_time < NEW.end_time AND NEW.start_time < end_time{_extra}) "
            f"BEGIN SELECT RAISE(ABORT, '{OVERLAP_GUARD_NAME}'); END"
        ).execute_if(dialect="sqlite"),
    )
event.listen(
    reservations,
    "after_create",
    DDL(
        f"ALTER TABLE reservations ADD CONSTRAINT {OVERLAP_GUARD_NAME} "
        "EXCLUDE USING gist (tsrange(start_time, end_time, '[)') WITH &&)"
    ).execute_if(dialect="postgresql"),
)


def create_storage_engine(database_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Build an engine whose transactions serialize conflicting writers.

    SQLite transactions open with ``BEGIN IMMEDIATE`` and wait at most
    ``timeout_seconds`` for the write lock. Other backends run at
    SERIALIZABLE isolation with bounded pool and statement timeouts.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        connect_args: dict[str, Any] = {"timeout": timeout_seconds, "check_same_thread": False}
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(url, connect_args=connect_args)
        else:
            engine = create_engine(url, connect_args=connect_args, poolclass=StaticPool)

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
            # Hand transaction control to the "begin" hook below.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(connection: Connection) -> None:
            connection.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    connect_args = {}
    if url.get_backend_name() == "postgresql":
        connect_args = {
            "connect_timeout": max(1, math.ceil(timeout_seconds)),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }
    return create_engine(
        url,
        isolation_level="SERIALIZABLE",
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args=connect_args,
    )


@contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except IntegrityError as error:
        if OVERLAP_GUARD_NAME in str(error.orig):
            logger.info("Overlap rejected by database guard")
            raise ConflictError() from error
        raise ReservationStorageError("Reservation storage rejected the change.", retriable=False) from error
    except (OperationalError, PoolTimeoutError) as error:
        logger.warning("Reservation storage unavailable: %s", error)
        raise ReservationStorageError() from error
    except DBAPIError as error:
        logger.warning("Reservation storage failure: %s", error)
        raise ReservationStorageError(retriable=error.connection_invalidated) from error


def _reservation_query():
    return select(
        reservations.c.id,
        reservations.c.title,
        reservations.c.start_time,
        reservations.c.end_time,
        reservations.c.user_id,
        reservations.c.created_at,
        reservations.c.updated_at,
        users.c.name.label("owner_name"),
        users.c.lastname.label("owner_lastname"),
        users.c.email.label("owner_email"),
        users.c.account_status.label("owner_status"),
    ).select_from(reservations.join(users, reservations.c.user_id == users.c.id))


def _to_reservation(row: Any) -> ReservationRecord:
    data = row._mapping
    return ReservationRecord(
        reservation_id=int(data["id"]),
        title=str(data["title"]),
        start=data["start_time"],
        end=data["end_time"],
        owner_id=int(data["user_id"]),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
        owner_name=str(data["owner_name"]),
        owner_lastname=str(data["owner_lastname"]),
        owner_email=str(data["owner_email"]),
        owner_status=str(data["owner_status"]),
    )


def _to_user(row: Any) -> UserRecord:
    data = row._mapping
    return UserRecord(
        user_id=int(data["id"]),
        email=str(data["email"]),
        name=str(data["name"]),
        lastname=str(data["lastname"]),
        account_status=str(data["account_status"]),
        created_at=data["created_at"],
    )


class ReservationUnitOfWork:
    """Repository operations bound to one open transaction."""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    def has_conflict(self, start: datetime, end: datetime, exclude_id: int | None = None) -> bool:
        query = select(reservations.c.start_time, reservations.c.end_time).where(
            reservations.c.start_time < end,
            reservations.c.end_time > start,
        )
        if exclude_id is not None:
            query = query.where(reservations.c.id != exclude_id)
        return any(
            has_time_overlap(start, end, row.start_time, row.end_time) for row in self.connection.execute(query)
        )

    def create(self, title: str, start: datetime, end: datetime, owner_id: int, now: datetime) -> ReservationRecord:
        result = self.connection.execute(
            insert(reservations).values(
                title=title,
                start_time=start,
                end_time=end,
                user_id=owner_id,
                created_at=now,
                updated_at=now,
            )
        )
        reservation_id = int(result.inserted_primary_key[0])
        self.log_event(
            "RESERVATION_CREATED",
            {
                "reservation_id": reservation_id,
                "user_id": owner_id,
                "title": title,
                "start": start.isoformat(timespec="minutes"),
                "end": end.isoformat(timespec="minutes"),
            },
            now,
        )
        created = self.find_by_id(reservation_id)
        if created is None:
            raise ReservationStorageError("Stored reservation could not be read back.", retriable=False)
        return created

    def find_by_id(self, reservation_id: int) -> ReservationRecord | None:
        row = self.connection.execute(_reservation_query().where(reservations.c.id == reservation_id)).first()
        return _to_reservation(row) if row is not None else None

    def find_by_user_id(self, user_id: int) -> list[ReservationRecord]:
        query = _reservation_query().where(reservations.c.user_id == user_id).order_by(reservations.c.start_time)
        return [_to_reservation(row) for row in self.connection.execute(query)]

    def find_by_week(self, monday: date) -> list[ReservationRecord]:
        """Return reservations starting Monday through Friday of the given week."""
        first_day = week_start(monday)
        window_start = datetime(first_day.year, first_day.month, first_day.day)
        window_end = window_start + timedelta(days=WORKING_DAYS_PER_WEEK)
        query = (
            _reservation_query()
            .where(reservations.c.start_time >= window_start, reservations.c.start_time < window_end)
            .order_by(reservations.c.start_time)
        )
        return [_to_reservation(row) for row in self.connection.execute(query)]

    def update(
        self,
        reservation_id: int,
        title: str,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> ReservationRecord | None:
        result = self.connection.execute(
            update(reservations)
            .where(reservations.c.id == reservation_id)
            .values(title=title, start_time=start, end_time=end, updated_at=now)
        )
        if result.rowcount == 0:
            return None

        self.log_event(
            "RESERVATION_UPDATED",
            {
                "reservation_id": reservation_id,
                "title": title,
                "start": start.isoformat(timespec="minutes"),
                "end": end.isoformat(timespec="minutes"),
            },
            now,
        )
        return self.find_by_id(reservation_id)

    def delete(self, reservation_id: int, now: datetime, requester_id: int | None = None) -> bool:
        result = self.connection.execute(delete(reservations).where(reservations.c.id == reservation_id))
        if result.rowcount == 0:
            return False
        self.log_event("RESERVATION_DELETED", {"reservation_id": reservation_id, "deleted_by": requester_id}, now)
        return True

    def is_owner(self, reservation_id: int, user_id: int) -> bool:
        owner_id = self.connection.execute(
            select(reservations.c.user_id).where(reservations.c.id == reservation_id)
        ).scalar_one_or_none()
        return owner_id is not None and int(owner_id) == user_id

    def add_user(self, email: str, name: str, lastname: str, now: datetime) -> UserRecord:
        if self.find_user_by_email(email) is not None:
            raise ConflictError("Email already in use.")

        try:
            result = self.connection.execute(
                insert(users).values(
                    email=email,
                    name=name,
                    lastname=lastname,
                    account_status=ACCOUNT_ACTIVE,
                    created_at=now,
                )
            )
        except IntegrityError as error:
            raise ConflictError("Email already in use.") from error

        user_id = int(result.inserted_primary_key[0])
        self.log_event("USER_REGISTERED", {"user_id": user_id}, now)
        created = self.get_user(user_id)
        if created is None:
            raise ReservationStorageError("Registered user could not be read back.", retriable=False)
        return created

    def get_user(self, user_id: int) -> UserRecord | None:
        row = self.connection.execute(select(users).where(users.c.id == user_id)).first()
        return _to_user(row) if row is not None else None

    def find_user_by_email(self, email: str) -> UserRecord | None:
        row = self.connection.execute(select(users).where(users.c.email == email)).first()
        return _to_user(row) if row is not None else None

    def anonymize_user(self, user_id: int, now: datetime) -> UserRecord | None:
        """Scrub a user's personal fields; their reservations stay in place."""
        result = self.connection.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(
                name=f"Anonyme-{user_id}",
                lastname="X",
                email=anonymized_email(user_id),
                account_status=ACCOUNT_ANONYMIZED,
            )
        )
        if result.rowcount == 0:
            return None
        self.log_event("USER_ANONYMIZED", {"user_id": user_id}, now)
        return self.get_user(user_id)

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime) -> None:
        self.connection.execute(
            insert(reservation_events).values(
                event_time=event_time,
                event_type=event_type,
                payload=yaml.safe_dump(payload, allow_unicode=True, sort_keys=False),
            )
        )

    def list_events(self) -> list[dict[str, Any]]:
        rows = self.connection.execute(select(reservation_events).order_by(reservation_events.c.id))
        return [
            {
                "event_time": row.event_time.isoformat(timespec="seconds"),
                "event_type": row.event_type,
                "payload": yaml.safe_load(row.payload) or {},
            }
            for row in rows
        ]


class ReservationSqlRepository:
    """Relational reservation store.

    Each call to ``transaction()`` is one atomic unit: a conflict read and
    the write that follows it commit together or not at all. Single-shot
    helpers below open their own transaction.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///data/room_booking.db",
        *,
        engine: Engine | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        self.engine = engine or create_storage_engine(database_url, timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Any) -> "ReservationSqlRepository":
        return cls(settings.database_url, timeout_seconds=settings.storage_timeout_seconds)

    def create_schema(self) -> None:
        with _storage_errors():
            metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[ReservationUnitOfWork]:
        with _storage_errors():
            with self.engine.begin() as connection:
                yield ReservationUnitOfWork(connection)

    def find_by_id(self, reservation_id: int) -> ReservationRecord | None:
        with self.transaction() as unit:
            return unit.find_by_id(reservation_id)

    def find_by_user_id(self, user_id: int) -> list[ReservationRecord]:
        with self.transaction() as unit:
            return unit.find_by_user_id(user_id)

    def find_by_week(self, monday: date) -> list[ReservationRecord]:
        with self.transaction() as unit:
            return unit.find_by_week(monday)

    def has_conflict(self, start: datetime, end: datetime, exclude_id: int | None = None) -> bool:
        with self.transaction() as unit:
            return unit.has_conflict(start, end, exclude_id)

    def is_owner(self, reservation_id: int, user_id: int) -> bool:
        with self.transaction() as unit:
            return unit.is_owner(reservation_id, user_id)

    def get_user(self, user_id: int) -> UserRecord | None:
        with self.transaction() as unit:
            return unit.get_user(user_id)

    def list_events(self) -> list[dict[str, Any]]:
        with self.transaction() as unit:
            return unit.list_events()
