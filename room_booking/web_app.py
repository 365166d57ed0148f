from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from flask import Flask, Request, jsonify, request

from .booking import Requester
from .config import BookingSettings, load_settings
from .errors import (
    BookingError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ReservationStorageError,
    ValidationError,
)
from .logging_config import setup_logging
from .service import ReservationService
from .sql_store import ReservationSqlRepository

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"

_STATUS_BY_ERROR: list[tuple[type[BookingError], int]] = [
    (ValidationError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ReservationStorageError, 503),
]


def header_identity(incoming: Request) -> Requester | None:
    """Read the identity forwarded by the authentication proxy."""
    raw_id = str(incoming.headers.get(USER_ID_HEADER, "")).strip()
    if not raw_id.isdigit():
        return None
    return Requester(id=int(raw_id))


def create_app(
    settings: BookingSettings | None = None,
    repository: ReservationSqlRepository | None = None,
    now_provider: Callable[[], datetime] | None = None,
    identity_resolver: Callable[[Request], Requester | None] | None = None,
) -> Flask:
    settings = settings or load_settings()
    setup_logging(settings.log_level, settings.log_file)

    app = Flask(__name__)
    if repository is None:
        repository = ReservationSqlRepository.from_settings(settings)
        repository.create_schema()
    service = ReservationService(repository, timezone=settings.timezone, now_provider=now_provider)
    resolve_identity = identity_resolver or header_identity
    app.extensions["reservation_service"] = service

    def _error_response(error: BookingError) -> Any:
        status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(error, kind)), 500)
        return jsonify({"ok": False, "code": error.code, "message": error.message}), status

    def _requester() -> Requester | None:
        return resolve_identity(request)

    def _unauthorized() -> Any:
        return jsonify({"ok": False, "code": "unauthorized", "message": "Authentication required."}), 401

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = f"Content-Type,{USER_ID_HEADER}"
        return response

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        return _error_response(error)

    @app.get("/api/reservations")
    def list_week() -> Any:
        if _requester() is None:
            return _unauthorized()
        records = service.list_week(request.args.get("date") or None)
        return jsonify({"ok": True, "reservations": [record.to_dict() for record in records]})

    @app.get("/api/reservations/user/<int:user_id>")
    def list_for_user(user_id: int) -> Any:
        if _requester() is None:
            return _unauthorized()
        records = service.list_for_user(user_id)
        return jsonify({"ok": True, "reservations": [record.to_dict() for record in records]})

    @app.get("/api/reservations/<int:reservation_id>")
    def get_reservation(reservation_id: int) -> Any:
        if _requester() is None:
            return _unauthorized()
        return jsonify({"ok": True, "reservation": service.get_by_id(reservation_id).to_dict()})

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        requester = _requester()
        if requester is None:
            return _unauthorized()

        payload = request.get_json(silent=True) or {}
        created = service.create_reservation(
            payload.get("title"),
            payload.get("start_date"),
            payload.get("end_date"),
            requester.id,
        )
        return jsonify({"ok": True, "message": "Reservation created.", "reservation": created.to_dict()}), 201

    @app.put("/api/reservations/<int:reservation_id>")
    def update_reservation(reservation_id: int) -> Any:
        requester = _requester()
        if requester is None:
            return _unauthorized()

        payload = request.get_json(silent=True) or {}
        updated = service.update_reservation(
            reservation_id,
            payload.get("title"),
            payload.get("start_date"),
            payload.get("end_date"),
            requester.id,
        )
        return jsonify({"ok": True, "message": "Reservation updated.", "reservation": updated.to_dict()})

    @app.delete("/api/reservations/<int:reservation_id>")
    def delete_reservation(reservation_id: int) -> Any:
        requester = _requester()
        if requester is None:
            return _unauthorized()

        service.delete_reservation(reservation_id, requester.id)
        return jsonify({"ok": True, "message": "Reservation deleted."})

    @app.post("/api/users")
    def register_user() -> Any:
        payload = request.get_json(silent=True) or {}
        user = service.register_user(payload.get("email"), payload.get("name"), payload.get("lastname"))
        return jsonify({"ok": True, "user": user.to_dict()}), 201

    @app.get("/api/users/me")
    def current_user() -> Any:
        requester = _requester()
        if requester is None:
            return _unauthorized()
        return jsonify({"ok": True, "user": service.get_user(requester.id).to_dict()})

    @app.post("/api/users/me/anonymize")
    def anonymize_me() -> Any:
        requester = _requester()
        if requester is None:
            return _unauthorized()

        service.anonymize_user(requester.id)
        return jsonify({"ok": True, "message": "Account anonymized."})

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5520, debug=False)
