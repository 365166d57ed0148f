from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from room_booking import BookingError, ReservationService, ReservationSqlRepository, load_settings
from room_booking.logging_config import setup_logging
from room_booking.validation import BUSINESS_END_HOUR, BUSINESS_START_HOUR, MIN_DURATION, TITLE_MAX_LENGTH

mcp = FastMCP(
    "Meeting Room Booking MCP Server",
    instructions="Expose the shared meeting-room calendar. Every mutating tool takes the acting user's id.",
    json_response=True,
)

SETTINGS = load_settings()
setup_logging(SETTINGS.log_level, SETTINGS.log_file)
REPOSITORY = ReservationSqlRepository.from_settings(SETTINGS)
REPOSITORY.create_schema()
SERVICE = ReservationService(REPOSITORY, timezone=SETTINGS.timezone)


def _error_payload(error: BookingError) -> dict[str, Any]:
    return {"ok": False, "code": error.code, "message": error.message}


@mcp.resource("booking://rules")
async def booking_rules() -> dict[str, Any]:
    """Describe the scheduling rules every reservation must satisfy."""
    return {
        "business_hours": f"{BUSINESS_START_HOUR:02d}:00-{BUSINESS_END_HOUR:02d}:00",
        "weekdays_only": True,
        "minimum_duration_minutes": int(MIN_DURATION.total_seconds() // 60),
        "title_max_length": TITLE_MAX_LENGTH,
        "timezone": SETTINGS.timezone,
    }


@mcp.tool()
def list_week_reservations(date: str | None = None) -> dict[str, Any]:
    """Return Monday-Friday reservations for the week containing ``date`` (YYYY-MM-DD)."""
    try:
        records = SERVICE.list_week(date)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, "reservations": [record.to_dict() for record in records]}


@mcp.tool()
def list_user_reservations(user_id: int) -> dict[str, Any]:
    """Return every reservation owned by a user."""
    try:
        records = SERVICE.list_for_user(user_id)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, "reservations": [record.to_dict() for record in records]}


@mcp.tool()
def create_reservation(requester_id: int, title: str, start_iso: str, end_iso: str) -> dict[str, Any]:
    """Book the room using ISO timestamps."""
    try:
        created = SERVICE.create_reservation(title, start_iso, end_iso, requester_id)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, "reservation": created.to_dict()}


@mcp.tool()
def update_reservation(
    requester_id: int,
    reservation_id: int,
    title: str,
    start_iso: str,
    end_iso: str,
) -> dict[str, Any]:
    """Move or rename one of the requester's reservations."""
    try:
        updated = SERVICE.update_reservation(reservation_id, title, start_iso, end_iso, requester_id)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, "reservation": updated.to_dict()}


@mcp.tool()
def delete_reservation(requester_id: int, reservation_id: int) -> dict[str, Any]:
    """Cancel a reservation owned by the requester or by an anonymized account."""
    try:
        SERVICE.delete_reservation(reservation_id, requester_id)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
