"""
API integration tests for the scheduling endpoints.

Requests go through the FastAPI app with the database session and the
collaborator sinks overridden (see the ``client`` fixture).
"""

from datetime import date

import pytest

from models import Booking

MONDAY = "2030-01-07"


def booking_body(provider, patient, appointment_type, start_time="10:00", **extra):
    body = {
        "provider_id": provider.id,
        "patient_id": patient.id,
        "appointment_type_id": appointment_type.id,
        "date": MONDAY,
        "start_time": start_time,
    }
    body.update(extra)
    return body


class TestRootEndpoints:
    """Test root and health endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Provider Scheduling API", "version": "1.0.0", "status": "running"}

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAvailabilityEndpoints:
    """Test slot lookup and availability configuration."""

    def test_get_slots(self, client, provider, appointment_type):
        """Test that a free working day returns slots on the 15-minute grid."""
        response = client.get(
            f"/api/providers/{provider.id}/availability/slots",
            params={"date": MONDAY, "appointment_type_id": appointment_type.id},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == MONDAY
        assert data["available_slots"][0] == {"start_time": "09:00", "end_time": "09:30"}
        assert data["available_slots"][-1] == {"start_time": "16:30", "end_time": "17:00"}

    def test_get_slots_unconfigured_provider(self, client, unconfigured_provider, appointment_type):
        """Test that a provider without working hours is a 404."""
        response = client.get(
            f"/api/providers/{unconfigured_provider.id}/availability/slots",
            params={"date": MONDAY, "appointment_type_id": appointment_type.id},
        )
        assert response.status_code == 404

    def test_get_slots_missing_query(self, client, provider):
        """Test that missing query parameters fail validation."""
        response = client.get(f"/api/providers/{provider.id}/availability/slots", params={"date": MONDAY})
        assert response.status_code == 422

    def test_batch_slots(self, client, provider, appointment_type):
        """Test that batch lookup returns one entry per date."""
        response = client.post(
            f"/api/providers/{provider.id}/availability/slots/batch",
            json={"dates": [MONDAY, "2030-01-12"], "appointment_type_id": appointment_type.id},
        )

        assert response.status_code == 200
        results = response.json()["results"]
        assert [result["date"] for result in results] == [MONDAY, "2030-01-12"]
        assert results[0]["available_slots"]
        assert results[1]["available_slots"] == []

    def test_working_hours_roundtrip(self, client, unconfigured_provider):
        """Test replacing and reading the weekly schedule."""
        days = [
            {"day_of_week": day, "is_working": day < 5, "start_time": "08:00" if day < 5 else None,
             "end_time": "12:00" if day < 5 else None}
            for day in range(7)
        ]
        put = client.put(f"/api/providers/{unconfigured_provider.id}/working-hours", json={"days": days})
        assert put.status_code == 200

        response = client.get(f"/api/providers/{unconfigured_provider.id}/working-hours")
        assert response.status_code == 200
        result = response.json()["days"]
        assert result[0] == {"day_of_week": 0, "is_working": True, "start_time": "08:00", "end_time": "12:00"}
        assert result[6]["is_working"] is False

    def test_working_hours_needs_seven_days(self, client, provider):
        """Test that a partial week is rejected."""
        response = client.put(
            f"/api/providers/{provider.id}/working-hours",
            json={"days": [{"day_of_week": 0, "is_working": True, "start_time": "09:00", "end_time": "17:00"}]},
        )
        assert response.status_code == 422

    def test_working_hours_invalid_window(self, client, provider):
        """Test that an inverted window is a 400."""
        days = [
            {"day_of_week": day, "is_working": True, "start_time": "17:00", "end_time": "09:00"}
            for day in range(7)
        ]
        response = client.put(f"/api/providers/{provider.id}/working-hours", json={"days": days})
        assert response.status_code == 400

    def test_date_exception_lifecycle(self, client, provider, appointment_type):
        """Test that a day-off exception removes the slots until it is deleted."""
        url = f"/api/providers/{provider.id}/date-exceptions/{MONDAY}"
        response = client.put(url, json={"is_working": False, "label": "Training"})
        assert response.status_code == 200
        assert response.json()["label"] == "Training"

        slots = client.get(
            f"/api/providers/{provider.id}/availability/slots",
            params={"date": MONDAY, "appointment_type_id": appointment_type.id},
        )
        assert slots.json()["available_slots"] == []

        assert client.delete(url).status_code == 204
        slots = client.get(
            f"/api/providers/{provider.id}/availability/slots",
            params={"date": MONDAY, "appointment_type_id": appointment_type.id},
        )
        assert slots.json()["available_slots"]

    def test_break_lifecycle(self, client, provider):
        """Test creating, listing and deactivating a break."""
        created = client.post(
            f"/api/providers/{provider.id}/breaks",
            json={"day_of_week": 0, "start_time": "12:00", "end_time": "13:00", "title": "Lunch"},
        )
        assert created.status_code == 201
        break_id = created.json()["id"]

        listed = client.get(f"/api/providers/{provider.id}/breaks")
        assert [item["id"] for item in listed.json()["breaks"]] == [break_id]

        deactivated = client.delete(f"/api/breaks/{break_id}")
        assert deactivated.status_code == 200
        assert deactivated.json()["is_active"] is False

        assert client.get(f"/api/providers/{provider.id}/breaks").json()["breaks"] == []
        assert len(client.get(
            f"/api/providers/{provider.id}/breaks", params={"include_inactive": True}
        ).json()["breaks"]) == 1


class TestBookingEndpoints:
    """Test booking endpoints."""

    def test_create_booking(self, client, provider, patient, appointment_type, audit_sink):
        """Test that a booking is created and audited."""
        response = client.post(
            "/api/bookings", json=booking_body(provider, patient, appointment_type, actor="front-desk")
        )

        assert response.status_code == 201
        data = response.json()
        assert data["start_at"] == "2030-01-07T10:00:00"
        assert data["end_at"] == "2030-01-07T10:30:00"
        assert data["status"] == "scheduled"
        assert audit_sink.events[0].actor == "front-desk"

    def test_create_booking_conflict(self, client, db_session, provider, patient, appointment_type):
        """Test that an overlapping booking is a 409 carrying the conflict kind."""
        first = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type))
        response = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type, "10:15"))

        assert response.status_code == 409
        conflict = response.json()["detail"]["conflict"]
        assert conflict == {"kind": "overlaps_booking", "conflicting_id": first.json()["id"]}
        assert db_session.query(Booking).count() == 1

    def test_create_booking_outside_hours(self, client, provider, patient, appointment_type):
        """Test that booking outside working hours is a 409."""
        response = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type, "18:00"))
        assert response.status_code == 409
        assert response.json()["detail"]["conflict"]["kind"] == "outside_working_hours"

    @pytest.mark.parametrize("start_time", ["9:00", "25:00", "10:00:00", "ten"])
    def test_create_booking_bad_time(self, client, provider, patient, appointment_type, start_time):
        """Test that malformed wall times fail request validation."""
        response = client.post(
            "/api/bookings", json=booking_body(provider, patient, appointment_type, start_time)
        )
        assert response.status_code == 422

    def test_create_booking_unknown_patient(self, client, provider, appointment_type):
        """Test that unknown references are a 404."""
        body = {
            "provider_id": provider.id, "patient_id": 999, "appointment_type_id": appointment_type.id,
            "date": MONDAY, "start_time": "10:00",
        }
        assert client.post("/api/bookings", json=body).status_code == 404

    def test_check_conflicts(self, client, provider, patient, appointment_type, db_session):
        """Test that a conflict check reports without booking."""
        free = client.post("/api/bookings/check-conflicts", json=booking_body(provider, patient, appointment_type))
        assert free.status_code == 200
        assert free.json() == {"has_conflict": False, "conflict": {"kind": "none"}}
        assert db_session.query(Booking).count() == 0

        client.post("/api/bookings", json=booking_body(provider, patient, appointment_type))
        taken = client.post("/api/bookings/check-conflicts", json=booking_body(provider, patient, appointment_type))
        assert taken.json()["has_conflict"] is True
        assert taken.json()["conflict"]["kind"] == "overlaps_booking"

    def test_reschedule(self, client, provider, patient, appointment_type):
        """Test moving a booking."""
        booking_id = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type)).json()["id"]

        response = client.post(
            f"/api/bookings/{booking_id}/reschedule", json={"date": "2030-01-08", "start_time": "11:00"}
        )

        assert response.status_code == 200
        assert response.json()["start_at"] == "2030-01-08T11:00:00"
        assert response.json()["end_at"] == "2030-01-08T11:30:00"

    def test_cancel_and_status(self, client, provider, patient, appointment_type):
        """Test cancellation and the terminal-status rule."""
        booking_id = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type)).json()["id"]

        cancelled = client.post(f"/api/bookings/{booking_id}/cancel", json={"reason": "Patient request"})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancellation_reason"] == "Patient request"

        reopened = client.post(f"/api/bookings/{booking_id}/status", json={"status": "scheduled"})
        assert reopened.status_code == 400

    def test_missing_booking(self, client):
        assert client.post("/api/bookings/999/cancel", json={}).status_code == 404


class TestLeaveEndpoints:
    """Test leave endpoints."""

    def test_leave_approval_lists_affected(self, client, provider, patient, appointment_type, notification_sink):
        """Test that approving leave returns and notifies the overlapping bookings."""
        booking_id = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type)).json()["id"]
        created = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Conference", "start_date": MONDAY, "end_date": MONDAY},
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        response = client.post(
            f"/api/leaves/{created.json()['id']}/status", json={"status": "approved", "actor": "manager"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["affected_bookings_processed"] is True
        assert data["affected_bookings"] == [{
            "booking_id": booking_id,
            "patient_id": patient.id,
            "start_at": "2030-01-07T10:00:00",
            "end_at": "2030-01-07T10:30:00",
        }]
        assert [item.booking_id for item in notification_sink.calls[0][1]] == [booking_id]

    def test_invalid_leave_transition(self, client, provider):
        """Test that a rejected leave cannot be approved."""
        leave_id = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Vacation", "start_date": MONDAY, "end_date": MONDAY},
        ).json()["id"]
        client.post(f"/api/leaves/{leave_id}/status", json={"status": "rejected", "rejection_reason": "Busy week"})

        response = client.post(f"/api/leaves/{leave_id}/status", json={"status": "approved"})
        assert response.status_code == 400

    def test_invalid_leave_dates(self, client, provider):
        response = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Vacation", "start_date": "2030-01-08", "end_date": MONDAY},
        )
        assert response.status_code == 400

    def test_list_and_get_leave(self, client, provider):
        """Test listing a provider's leave with filters and fetching one leave."""
        first = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Vacation", "start_date": MONDAY, "end_date": MONDAY},
        ).json()
        second = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Conference", "start_date": "2030-02-04", "end_date": "2030-02-05"},
        ).json()
        client.post(f"/api/leaves/{second['id']}/status", json={"status": "approved"})

        listed = client.get(f"/api/providers/{provider.id}/leaves")
        approved = client.get(f"/api/providers/{provider.id}/leaves", params={"status": "approved"})
        january = client.get(
            f"/api/providers/{provider.id}/leaves", params={"start_date": MONDAY, "end_date": "2030-01-31"}
        )

        assert [leave["id"] for leave in listed.json()["leaves"]] == [first["id"], second["id"]]
        assert [leave["id"] for leave in approved.json()["leaves"]] == [second["id"]]
        assert [leave["id"] for leave in january.json()["leaves"]] == [first["id"]]

        fetched = client.get(f"/api/leaves/{first['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Vacation"
        assert fetched.json()["affected_bookings"] == []
        assert client.get("/api/leaves/999").status_code == 404
        assert client.get(f"/api/providers/{provider.id}/leaves", params={"status": "granted"}).status_code == 400

    def test_reprocess_affected_bookings(self, client, provider, patient, appointment_type, failing_sink,
                                         notification_sink):
        """Test that a failed notification can be retried over HTTP."""
        from api.dependencies import get_notification_sink
        from main import app

        booking_id = client.post("/api/bookings", json=booking_body(provider, patient, appointment_type)).json()["id"]
        leave_id = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Conference", "start_date": MONDAY, "end_date": MONDAY},
        ).json()["id"]

        app.dependency_overrides[get_notification_sink] = lambda: failing_sink
        approved = client.post(f"/api/leaves/{leave_id}/status", json={"status": "approved"})
        assert approved.json()["affected_bookings_processed"] is False

        app.dependency_overrides[get_notification_sink] = lambda: notification_sink
        response = client.post(f"/api/leaves/{leave_id}/reprocess-affected-bookings")

        assert response.status_code == 200
        assert response.json()["affected_bookings_processed"] is True
        assert [item.booking_id for item in notification_sink.calls[0][1]] == [booking_id]

    def test_reprocess_pending_leave(self, client, provider):
        leave_id = client.post(
            f"/api/providers/{provider.id}/leaves",
            json={"title": "Vacation", "start_date": MONDAY, "end_date": MONDAY},
        ).json()["id"]
        assert client.post(f"/api/leaves/{leave_id}/reprocess-affected-bookings").status_code == 400


class TestRecurringSeriesEndpoints:
    """Test recurring series endpoints."""

    def series_body(self, provider, patient, appointment_type, **extra):
        body = {
            "provider_id": provider.id,
            "patient_id": patient.id,
            "appointment_type_id": appointment_type.id,
            "frequency": "weekly",
            "time_of_day": "10:00",
            "start_date": MONDAY,
            "occurrence_count": 4,
        }
        body.update(extra)
        return body

    def test_create_get_cancel(self, client, provider, patient, appointment_type):
        """Test the series lifecycle over HTTP."""
        created = client.post(
            "/api/recurring-series",
            json=self.series_body(provider, patient, appointment_type, exception_dates=["2030-01-14"]),
        )
        assert created.status_code == 201
        data = created.json()
        assert (data["booked_count"], data["skipped_count"], data["failed_count"]) == (3, 1, 0)
        assert data["partial_failure"] is False
        assert data["outcomes"][1]["reason"] == "exception"

        series = client.get(f"/api/recurring-series/{data['series_id']}")
        assert series.status_code == 200
        assert series.json()["exception_dates"] == ["2030-01-14"]
        assert len(series.json()["generated_booking_ids"]) == 3

        cancelled = client.post(
            f"/api/recurring-series/{data['series_id']}/cancel",
            json={"mode": "future", "from_date": "2030-01-21"},
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "partially_cancelled"
        assert len(cancelled.json()["cancelled_booking_ids"]) == 2

    def test_partial_failure_still_created(self, client, provider, patient, appointment_type):
        """Test that a series with a failed occurrence is created and flagged."""
        client.post(
            "/api/bookings", json=booking_body(provider, patient, appointment_type, date="2030-01-14")
        )
        response = client.post("/api/recurring-series", json=self.series_body(provider, patient, appointment_type))

        assert response.status_code == 201
        assert response.json()["partial_failure"] is True
        assert response.json()["outcomes"][1]["status"] == "failed"

    def test_invalid_rule(self, client, provider, patient, appointment_type):
        """Test that an inconsistent rule is a 400."""
        response = client.post(
            "/api/recurring-series",
            json=self.series_body(provider, patient, appointment_type, frequency="monthly_by_date"),
        )
        assert response.status_code == 400

    def test_invalid_cancel_mode(self, client):
        response = client.post("/api/recurring-series/1/cancel", json={"mode": "past"})
        assert response.status_code == 422

    def test_missing_series(self, client):
        assert client.get("/api/recurring-series/999").status_code == 404

    def test_update_series(self, client, provider, patient, appointment_type):
        """Test updating notes from one occurrence on, then a single occurrence's status."""
        series_id = client.post(
            "/api/recurring-series", json=self.series_body(provider, patient, appointment_type, notes="Knee"),
        ).json()["series_id"]

        notes = client.put(
            f"/api/recurring-series/{series_id}",
            json={"mode": "this_and_future", "notes": "Shoulder", "from_date": "2030-01-21"},
        )
        assert notes.status_code == 200
        assert len(notes.json()["updated_booking_ids"]) == 2
        assert client.get(f"/api/recurring-series/{series_id}").json()["notes"] == "Shoulder"

        single = client.put(
            f"/api/recurring-series/{series_id}",
            json={"mode": "this", "position": 0, "status": "completed"},
        )
        assert single.status_code == 200
        assert single.json()["status"] == "active"

        again = client.put(
            f"/api/recurring-series/{series_id}",
            json={"mode": "this", "position": 0, "status": "scheduled"},
        )
        assert again.status_code == 400

    def test_update_series_invalid(self, client, provider, patient, appointment_type):
        series_id = client.post(
            "/api/recurring-series", json=self.series_body(provider, patient, appointment_type),
        ).json()["series_id"]

        assert client.put(f"/api/recurring-series/{series_id}", json={"mode": "all"}).status_code == 400
        assert client.put(
            f"/api/recurring-series/{series_id}", json={"mode": "all", "status": "completed"}
        ).status_code == 400
        assert client.put(f"/api/recurring-series/{series_id}", json={"mode": "some"}).status_code == 422
        assert client.put("/api/recurring-series/999", json={"notes": "x"}).status_code == 404

    def test_list_patient_series(self, client, provider, patient, appointment_type):
        series_id = client.post(
            "/api/recurring-series", json=self.series_body(provider, patient, appointment_type),
        ).json()["series_id"]

        response = client.get(f"/api/patients/{patient.id}/recurring-series")

        assert response.status_code == 200
        assert [series["id"] for series in response.json()["series"]] == [series_id]
        assert client.get("/api/patients/999/recurring-series").json() == {"series": []}


class TestCalendarEndpoints:
    """Test calendar and holiday endpoints."""

    def test_calendar(self, client, provider, patient, appointment_type):
        """Test the calendar view over HTTP."""
        client.post("/api/bookings", json=booking_body(provider, patient, appointment_type))
        holiday = client.post("/api/holidays", json={"date": MONDAY, "name": "Founders Day"})
        assert holiday.status_code == 201
        assert holiday.json()["country"] == "US"

        response = client.get(
            f"/api/providers/{provider.id}/calendar", params={"start_date": MONDAY, "end_date": MONDAY}
        )

        assert response.status_code == 200
        data = response.json()
        assert [event["kind"] for event in data["events"]] == ["holiday", "working_hours", "booking"]
        assert data["overlaps"][0]["other_kind"] == "holiday"

    def test_calendar_range_too_long(self, client, provider):
        response = client.get(
            f"/api/providers/{provider.id}/calendar",
            params={"start_date": MONDAY, "end_date": str(date(2030, 3, 31))},
        )
        assert response.status_code == 400

    def test_duplicate_holiday(self, client):
        client.post("/api/holidays", json={"date": MONDAY, "name": "Founders Day"})
        response = client.post("/api/holidays", json={"date": MONDAY, "name": "Founders Day"})
        assert response.status_code == 400

    def test_clinic_calendar(self, client, provider_factory):
        """Test the calendar across providers, all active ones or a selection."""
        first = provider_factory("Dr. Chen")
        second = provider_factory("Dr. Lin")

        everyone = client.get("/api/calendar", params={"start_date": MONDAY, "end_date": MONDAY})
        selected = client.get(
            "/api/calendar",
            params={"start_date": MONDAY, "end_date": MONDAY, "provider_ids": [second.id]},
        )

        assert everyone.status_code == 200
        assert [calendar["provider_id"] for calendar in everyone.json()["providers"]] == [first.id, second.id]
        assert [calendar["provider_id"] for calendar in selected.json()["providers"]] == [second.id]
        assert client.get(
            "/api/calendar", params={"start_date": MONDAY, "end_date": "2030-02-20"}
        ).status_code == 400
