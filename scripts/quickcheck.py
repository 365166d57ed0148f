from __future__ import annotations

from datetime import datetime
from pathlib import Path
import tempfile
import traceback

from room_booking import ConflictError, ReservationService, ReservationSqlRepository


def main() -> int:
    print("[INFO] Meeting Room Booking Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = Path(temp_dir) / "quickcheck.db"
        repo = ReservationSqlRepository(f"sqlite:///{db_path}")
        repo.create_schema()
        service = ReservationService(repo, now_provider=lambda: datetime(2024, 6, 10, 8, 0))

        alice = service.register_user("alice@example.com", "Alice", "Martin")
        bob = service.register_user("bob@example.com", "Bob", "Durand")
        print(f"[OK] Users registered: {alice.user_id}, {bob.user_id}")

        created = service.create_reservation("Sync", "2024-06-10T09:00", "2024-06-10T10:00", alice.user_id)
        print(f"[OK] Reserved slot: {created.start.isoformat(timespec='minutes')}~{created.end.isoformat(timespec='minutes')}")

        try:
            service.create_reservation("Overlap", "2024-06-10T09:30", "2024-06-10T10:30", bob.user_id)
        except ConflictError as error:
            print(f"[OK] Overlap rejected: {error.message}")
        else:
            print("[ERROR] Overlapping reservation was accepted.")
            return 1

        touching = service.create_reservation("Follow-up", "2024-06-10T10:00", "2024-06-10T11:00", bob.user_id)
        print(f"[OK] Touching slot accepted: #{touching.reservation_id}")

        service.anonymize_user(alice.user_id)
        service.delete_reservation(created.reservation_id, bob.user_id)
        print("[OK] Anonymized owner's reservation cleared by another user")

        week = service.list_week("2024-06-12")
        print(f"[OK] Reservations this week: {len(week)}")
        print(f"[OK] Audit events recorded: {len(repo.list_events())}")
        repo.dispose()

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
