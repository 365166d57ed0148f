import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from room_booking import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    OutsideBusinessHoursError,
    PastDateError,
    ReservationService,
    ReservationSqlRepository,
    TooShortError,
    WeekendError,
)

# Monday 2024-06-10, 08:00 local time.
NOW = datetime(2024, 6, 10, 8, 0)


class ServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.repo = ReservationSqlRepository(f"sqlite:///{Path(self._temp_dir.name) / 'booking.db'}")
        self.repo.create_schema()
        self.now = NOW
        self.service = ReservationService(self.repo, now_provider=lambda: self.now)
        self.alice = self.service.register_user("alice@example.com", "Alice", "Martin")
        self.bob = self.service.register_user("bob@example.com", "Bob", "Durand")

    def tearDown(self) -> None:
        self.repo.dispose()
        self._temp_dir.cleanup()


class TestCreateReservation(ServiceTestCase):
    def test_overlap_and_touching_scenario(self) -> None:
        created = self.service.create_reservation("Sync", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id)

        with self.assertRaises(ConflictError):
            self.service.create_reservation("Review", "2024-06-10T09:30", "2024-06-10T10:30", self.bob.user_id)

        touching = self.service.create_reservation("Review", "2024-06-10T10:00", "2024-06-10T11:00", self.bob.user_id)

        self.assertNotEqual(created.reservation_id, touching.reservation_id)
        self.assertEqual(touching.start, datetime(2024, 6, 10, 10, 0))

    def test_created_reservation_round_trips_through_get_by_id(self) -> None:
        created = self.service.create_reservation("  Planning ", datetime(2024, 6, 11, 14, 0), datetime(2024, 6, 11, 16, 0), self.alice.user_id)

        found = self.service.get_by_id(created.reservation_id)

        self.assertEqual(found.title, "Planning")
        self.assertEqual(found.start, datetime(2024, 6, 11, 14, 0))
        self.assertEqual(found.end, datetime(2024, 6, 11, 16, 0))
        self.assertEqual(found.owner_id, self.alice.user_id)
        self.assertEqual(found.owner_display_name, "Alice Martin")

    def test_containing_and_contained_intervals_conflict(self) -> None:
        self.service.create_reservation("Sync", "2024-06-10T10:00", "2024-06-10T12:00", self.alice.user_id)

        with self.assertRaises(ConflictError):
            self.service.create_reservation("Inner", "2024-06-10T10:30", "2024-06-10T11:30", self.bob.user_id)
        with self.assertRaises(ConflictError):
            self.service.create_reservation("Outer", "2024-06-10T09:00", "2024-06-10T13:00", self.bob.user_id)

    def test_validation_errors_are_reported_by_kind(self) -> None:
        cases = [
            (InvalidInputError, "", "2024-06-10T09:00", "2024-06-10T10:00"),
            (InvalidInputError, "x" * 23, "2024-06-10T09:00", "2024-06-10T10:00"),
            (InvalidInputError, "Sync", "tomorrow", "2024-06-10T10:00"),
            (PastDateError, "Sync", "2024-06-07T09:00", "2024-06-07T10:00"),
            (TooShortError, "Sync", "2024-06-10T09:00", "2024-06-10T09:30"),
            (OutsideBusinessHoursError, "Sync", "2024-06-10T18:00", "2024-06-10T19:01"),
            (WeekendError, "Sync", "2024-06-15T10:00", "2024-06-15T11:00"),
        ]
        for error_type, title, start, end in cases:
            with self.subTest(error=error_type.__name__, start=start):
                with self.assertRaises(error_type):
                    self.service.create_reservation(title, start, end, self.alice.user_id)

        self.assertEqual(self.service.list_for_user(self.alice.user_id), [])

    def test_unknown_owner_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.create_reservation("Sync", "2024-06-10T09:00", "2024-06-10T10:00", 999)

    def test_aware_clock_is_converted_to_booking_timezone(self) -> None:
        # 06:30 UTC is 08:30 in Paris, so a 08:00 start is already in the past.
        service = ReservationService(
            self.repo,
            timezone="Europe/Paris",
            now_provider=lambda: datetime(2024, 6, 10, 6, 30, tzinfo=ZoneInfo("UTC")),
        )
        with self.assertRaises(PastDateError):
            service.create_reservation("Sync", "2024-06-10T08:00", "2024-06-10T09:00", self.alice.user_id)
        service.create_reservation("Sync", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id)


class TestUpdateReservation(ServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.reservation = self.service.create_reservation(
            "Sync", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id
        )

    def test_update_to_same_interval_succeeds(self) -> None:
        updated = self.service.update_reservation(
            self.reservation.reservation_id, "Sync v2", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id
        )

        self.assertEqual(updated.title, "Sync v2")
        self.assertEqual(updated.start, datetime(2024, 6, 10, 9, 0))

    def test_update_overlapping_own_prior_interval_succeeds(self) -> None:
        updated = self.service.update_reservation(
            self.reservation.reservation_id, "Sync", "2024-06-10T09:30", "2024-06-10T11:00", self.alice.user_id
        )

        self.assertEqual(updated.end, datetime(2024, 6, 10, 11, 0))

    def test_update_into_other_reservation_conflicts(self) -> None:
        self.service.create_reservation("Review", "2024-06-10T10:00", "2024-06-10T11:00", self.bob.user_id)

        with self.assertRaises(ConflictError):
            self.service.update_reservation(
                self.reservation.reservation_id, "Sync", "2024-06-10T09:00", "2024-06-10T10:30", self.alice.user_id
            )

        unchanged = self.service.get_by_id(self.reservation.reservation_id)
        self.assertEqual(unchanged.end, datetime(2024, 6, 10, 10, 0))

    def test_update_is_fully_revalidated(self) -> None:
        with self.assertRaises(WeekendError):
            self.service.update_reservation(
                self.reservation.reservation_id, "Sync", "2024-06-15T09:00", "2024-06-15T10:00", self.alice.user_id
            )
        with self.assertRaises(TooShortError):
            self.service.update_reservation(
                self.reservation.reservation_id, "Sync", "2024-06-10T09:00", "2024-06-10T09:15", self.alice.user_id
            )

    def test_non_owner_cannot_update(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.service.update_reservation(
                self.reservation.reservation_id, "Mine now", "2024-06-10T09:00", "2024-06-10T10:00", self.bob.user_id
            )

    def test_update_unknown_reservation_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.update_reservation(999, "Sync", "2024-06-10T12:00", "2024-06-10T13:00", self.alice.user_id)


class TestDeleteReservation(ServiceTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.reservation = self.service.create_reservation(
            "Sync", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id
        )

    def test_delete_twice_then_not_found(self) -> None:
        self.service.delete_reservation(self.reservation.reservation_id, self.alice.user_id)

        with self.assertRaises(NotFoundError):
            self.service.delete_reservation(self.reservation.reservation_id, self.alice.user_id)
        with self.assertRaises(NotFoundError):
            self.service.get_by_id(self.reservation.reservation_id)

    def test_non_owner_cannot_delete(self) -> None:
        with self.assertRaises(ForbiddenError):
            self.service.delete_reservation(self.reservation.reservation_id, self.bob.user_id)

        self.service.get_by_id(self.reservation.reservation_id)

    def test_anonymized_owner_reservation_can_be_deleted_but_not_updated(self) -> None:
        self.service.anonymize_user(self.alice.user_id)

        with self.assertRaises(ForbiddenError):
            self.service.update_reservation(
                self.reservation.reservation_id, "Taken", "2024-06-10T09:00", "2024-06-10T10:00", self.bob.user_id
            )

        self.service.delete_reservation(self.reservation.reservation_id, self.bob.user_id)
        with self.assertRaises(NotFoundError):
            self.service.get_by_id(self.reservation.reservation_id)

    def test_freed_slot_can_be_booked_again(self) -> None:
        self.service.delete_reservation(self.reservation.reservation_id, self.alice.user_id)

        rebooked = self.service.create_reservation("Review", "2024-06-10T09:00", "2024-06-10T10:00", self.bob.user_id)
        self.assertEqual(rebooked.owner_id, self.bob.user_id)


class TestListings(ServiceTestCase):
    def test_list_week_accepts_any_day_of_the_week(self) -> None:
        monday = self.service.create_reservation("Mon", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id)
        friday = self.service.create_reservation("Fri", "2024-06-14T17:00", "2024-06-14T19:00", self.bob.user_id)
        self.service.create_reservation("Next", "2024-06-17T09:00", "2024-06-17T10:00", self.bob.user_id)

        for any_day in (date(2024, 6, 12), "2024-06-16", datetime(2024, 6, 14, 23, 0)):
            with self.subTest(any_day=any_day):
                week = self.service.list_week(any_day)
                self.assertEqual([record.reservation_id for record in week], [monday.reservation_id, friday.reservation_id])

    def test_list_week_defaults_to_current_week(self) -> None:
        self.service.create_reservation("Mon", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id)

        self.assertEqual(len(self.service.list_week()), 1)

    def test_list_week_rejects_malformed_date(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.service.list_week("next week")

    def test_list_for_user(self) -> None:
        self.service.create_reservation("Mon", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id)
        self.service.create_reservation("Tue", "2024-06-11T09:00", "2024-06-11T10:00", self.bob.user_id)

        titles = [record.title for record in self.service.list_for_user(self.bob.user_id)]
        self.assertEqual(titles, ["Tue"])


class TestUsers(ServiceTestCase):
    def test_register_normalizes_email(self) -> None:
        user = self.service.register_user("  Carol@Example.COM ", "Carol", "Petit")

        self.assertEqual(user.email, "carol@example.com")
        self.assertFalse(user.is_anonymized)

    def test_register_rejects_duplicates_and_bad_input(self) -> None:
        with self.assertRaises(ConflictError):
            self.service.register_user("ALICE@example.com", "Alice", "Again")
        with self.assertRaises(InvalidInputError):
            self.service.register_user("carol@example.com", "", "Petit")
        with self.assertRaises(InvalidInputError):
            self.service.register_user("not-an-email", "Carol", "Petit")

    def test_register_refuses_reserved_anonymized_namespace(self) -> None:
        with self.assertRaises(InvalidInputError):
            self.service.register_user("anonyme-99@anonymized.local", "Mallory", "X")

    def test_anonymize_is_idempotent_and_keeps_history(self) -> None:
        self.service.create_reservation("Sync", "2024-06-10T09:00", "2024-06-10T10:00", self.alice.user_id)

        first = self.service.anonymize_user(self.alice.user_id)
        second = self.service.anonymize_user(self.alice.user_id)

        self.assertEqual(first, second)
        self.assertEqual(first.email, f"anonyme-{self.alice.user_id}@anonymized.local")
        history = self.service.list_for_user(self.alice.user_id)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].owner_name, f"Anonyme-{self.alice.user_id}")

    def test_anonymize_unknown_user_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.service.anonymize_user(999)

    def test_get_user_returns_profile(self) -> None:
        profile = self.service.get_user(self.bob.user_id)

        self.assertEqual(profile, self.bob)
        with self.assertRaises(NotFoundError):
            self.service.get_user(999)


if __name__ == "__main__":
    unittest.main()
