import unittest
from dataclasses import replace
from datetime import date, datetime

from slot_allocator import AllocationSettings, ReservationStatus, ValidationError, validate_reservation_request
from slot_allocator.validation import normalize_fields, recheck_reservation_request, validate_availability_query

SETTINGS = AllocationSettings()


def _payload(**overrides):
    payload = {
        "venueId": "venue-x",
        "activityId": "sport-y",
        "date": "2026-03-02",
        "startHour": "09:00",
        "endHour": "10:00",
        "status": "Booking",
    }
    payload.update(overrides)
    return payload


class TestValidateReservationRequest(unittest.TestCase):
    def assertRejects(self, payload, fields, settings=SETTINGS) -> ValidationError:
        with self.assertRaises(ValidationError) as context:
            validate_reservation_request(payload, settings)
        self.assertEqual(list(context.exception.fields), fields)
        return context.exception

    def test_valid_request_is_normalized(self) -> None:
        request = validate_reservation_request(_payload(remarks="league night"), SETTINGS, actor_id="user-1")

        self.assertEqual(request.venue_id, "venue-x")
        self.assertEqual(request.date, date(2026, 3, 2))
        self.assertEqual(request.start_hour, 9)
        self.assertEqual(request.end_hour, 10)
        self.assertEqual(request.status, ReservationStatus.BOOKING)
        self.assertIsNone(request.resource_id)
        self.assertEqual(request.actor_id, "user-1")
        self.assertEqual(request.remarks, "league night")

    def test_missing_fields_are_all_named(self) -> None:
        error = self.assertRejects({"venueId": "venue-x", "startHour": ""}, ["activityId", "date", "startHour", "endHour", "status"])
        self.assertIn("required", error.message)

    def test_presence_is_checked_before_identifiers(self) -> None:
        self.assertRejects(_payload(venueId="bad id!", status=None), ["status"])

    def test_malformed_identifiers_are_rejected(self) -> None:
        self.assertRejects(_payload(venueId="bad id!"), ["venueId"])
        self.assertRejects(_payload(resourceId="../court"), ["resourceId"])

    def test_identifiers_are_checked_before_date(self) -> None:
        self.assertRejects(_payload(activityId="???", date="02/03/2026"), ["activityId"])

    def test_date_must_be_strict_iso_day(self) -> None:
        self.assertRejects(_payload(date="2026-3-2"), ["date"])
        self.assertRejects(_payload(date="2026-02-30"), ["date"])
        self.assertRejects(_payload(date=20260302), ["date"])

    def test_datetime_is_reduced_to_its_day(self) -> None:
        request = validate_reservation_request(_payload(date=datetime(2026, 3, 2, 23, 15)), SETTINGS)

        self.assertEqual(request.date, date(2026, 3, 2))
        self.assertNotIsInstance(request.date, datetime)

    def test_recheck_applies_payload_rules_to_request_objects(self) -> None:
        request = validate_reservation_request(_payload(), SETTINGS, actor_id="user-1")

        self.assertEqual(recheck_reservation_request(request, SETTINGS), request)
        with self.assertRaises(ValidationError):
            recheck_reservation_request(replace(request, start_hour=10, end_hour=9), SETTINGS)
        with self.assertRaises(ValidationError):
            recheck_reservation_request(replace(request, end_hour=23), SETTINGS)

    def test_time_must_be_on_the_hour(self) -> None:
        self.assertRejects(_payload(startHour="09:30"), ["startHour"])
        self.assertRejects(_payload(endHour="9:00"), ["endHour"])
        self.assertRejects(_payload(endHour="ten"), ["endHour"])

    def test_integer_hours_are_accepted(self) -> None:
        request = validate_reservation_request(_payload(startHour=20, endHour=22), SETTINGS)

        self.assertEqual((request.start_hour, request.end_hour), (20, 22))

    def test_hours_outside_operating_window_are_rejected(self) -> None:
        self.assertRejects(_payload(startHour="03:00", endHour="05:00"), ["startHour", "endHour"])
        self.assertRejects(_payload(startHour="21:00", endHour="23:00"), ["startHour", "endHour"])
        self.assertRejects(_payload(startHour="10:00", endHour="09:00"), ["startHour", "endHour"])

    def test_late_deployment_accepts_hours_until_midnight(self) -> None:
        late = AllocationSettings(operating_end=24)

        request = validate_reservation_request(_payload(startHour="22:00", endHour="24:00"), late)

        self.assertEqual(request.end_hour, 24)

    def test_minimum_duration_is_enforced(self) -> None:
        two_hour_minimum = AllocationSettings(minimum_duration_hours=2)

        self.assertRejects(_payload(), ["startHour", "endHour"], settings=two_hour_minimum)

    def test_status_must_belong_to_enumeration(self) -> None:
        error = self.assertRejects(_payload(status="Tentative"), ["status"])
        self.assertIn("PendingPayment", error.message)

    def test_window_is_checked_before_status(self) -> None:
        self.assertRejects(_payload(startHour="03:00", status="Tentative"), ["startHour", "endHour"])

    def test_legacy_field_names_and_statuses_are_mapped(self) -> None:
        request = validate_reservation_request(
            {
                "centreId": "venue-x",
                "sportId": "sport-y",
                "equipmentId": "court-1",
                "bookingDate": "2026-03-02",
                "startTime": "09:00",
                "endTime": "11:00",
                "type": "Blocked / Tournament",
                "note": "finals",
            },
            SETTINGS,
        )

        self.assertEqual(request.resource_id, "court-1")
        self.assertEqual(request.status, ReservationStatus.BLOCKED)
        self.assertEqual(request.remarks, "finals")

    def test_legacy_status_spellings(self) -> None:
        cases = {
            "Checked": ReservationStatus.CHECKED_IN,
            "Checked-in": ReservationStatus.CHECKED_IN,
            "Payment Pending": ReservationStatus.PENDING_PAYMENT,
            "Pending Payment": ReservationStatus.PENDING_PAYMENT,
            "Completed": ReservationStatus.COMPLETED,
        }
        for raw, expected in cases.items():
            with self.subTest(status=raw):
                self.assertEqual(validate_reservation_request(_payload(status=raw), SETTINGS).status, expected)


class TestBoundaryMapping(unittest.TestCase):
    def test_first_present_alias_wins_and_unknown_keys_are_dropped(self) -> None:
        fields = normalize_fields({"venueId": "", "centerId": "venue-a", "centreId": "venue-b", "colour": "red"})

        self.assertEqual(fields, {"venueId": "venue-a"})

    def test_availability_query(self) -> None:
        query = validate_availability_query({"centerId": "venue-x", "sportId": "sport-y", "date": "2026-03-02"})

        self.assertEqual(query.date, date(2026, 3, 2))
        with self.assertRaises(ValidationError):
            validate_availability_query({"centerId": "venue-x", "date": "2026-03-02"})


if __name__ == "__main__":
    unittest.main()
