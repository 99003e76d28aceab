from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql

from depresscare.core.exceptions import (
    NotFoundError, InvalidInputError, ConflictError, InvalidStateError
)
from depresscare.core.security import UserRole
from depresscare.models.appointment import Appointment, AppointmentStatus
from depresscare.services.appointment_service import AppointmentService, can_transition
from depresscare.services.meeting_service import MeetingLinkGenerator
from depresscare.services.notification_service import NotificationService

from tests.factories import (
    FakeSender, create_user, create_psychiatrist, create_appointment, at
)

NOW = datetime(2025, 1, 1, 9, 0)


@pytest.fixture
def sender():
    return FakeSender()

@pytest.fixture
def service(db_session, sender):
    return AppointmentService(
        db_session,
        notifications=NotificationService(sender=sender),
        meeting_links=MeetingLinkGenerator("https://meet.example.com"),
        clock=lambda: NOW,
    )

@pytest.fixture
def patient(db_session):
    return create_user(
        db_session, "alice@example.com", full_name="Alice Patient",
        previous_diagnosis=True, symptoms="Low mood", short_description="Follow-up"
    )

@pytest.fixture
def other_patient(db_session):
    return create_user(db_session, "carol@example.com", full_name="Carol Patient")

@pytest.fixture
def psychiatrist(db_session):
    return create_psychiatrist(db_session, "bob@example.com", full_name="Dr Bob", specialization="Depression")

@pytest.fixture
def other_psychiatrist(db_session):
    return create_psychiatrist(db_session, "dave@example.com", full_name="Dr Dave")


class TestBooking:

    def test_book_future_slot_is_scheduled(self, service, patient, psychiatrist):
        appointment = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))

        assert appointment.id is not None
        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.scheduled_time == at(2025, 1, 10, 10)
        assert appointment.meeting_link.startswith("https://meet.example.com/")
        assert len(appointment.meeting_link.rsplit("/", 1)[1]) == 32

    def test_intake_defaults_to_patient_profile(self, service, patient, psychiatrist):
        appointment = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))

        assert appointment.previous_diagnosis is True
        assert appointment.symptoms == "Low mood"
        assert appointment.short_description == "Follow-up"

    def test_explicit_intake_overrides_profile(self, service, patient, psychiatrist):
        appointment = service.book_appointment(
            patient.id, psychiatrist.id, at(2025, 1, 10, 10),
            previous_diagnosis=False, symptoms="Insomnia", short_description="New issue"
        )

        assert appointment.previous_diagnosis is False
        assert appointment.symptoms == "Insomnia"
        assert appointment.short_description == "New issue"

    def test_aware_time_is_stored_as_utc(self, service, patient, psychiatrist):
        plus_two = timezone(timedelta(hours=2))
        appointment = service.book_appointment(
            patient.id, psychiatrist.id, datetime(2025, 1, 10, 12, 0, tzinfo=plus_two)
        )

        assert appointment.scheduled_time == at(2025, 1, 10, 10)

    @pytest.mark.parametrize("scheduled_time", [NOW, NOW - timedelta(minutes=1), at(2024, 6, 1, 10)])
    def test_past_or_present_time_is_invalid(self, service, patient, psychiatrist, scheduled_time):
        with pytest.raises(InvalidInputError):
            service.book_appointment(patient.id, psychiatrist.id, scheduled_time)

    def test_unknown_psychiatrist_not_found(self, service, patient):
        with pytest.raises(NotFoundError) as exc_info:
            service.book_appointment(patient.id, 999, at(2025, 1, 10, 10))
        assert exc_info.value.detail == "Psychiatrist not found"

    def test_user_without_psychiatrist_role_not_found(self, service, patient, other_patient):
        with pytest.raises(NotFoundError):
            service.book_appointment(patient.id, other_patient.id, at(2025, 1, 10, 10))

    def test_psychiatrist_role_without_profile_not_found(self, service, db_session, patient):
        bare = create_user(db_session, "noprofile@example.com", role=UserRole.PSYCHIATRIST)
        with pytest.raises(NotFoundError):
            service.book_appointment(patient.id, bare.id, at(2025, 1, 10, 10))

    def test_unknown_patient_not_found(self, service, psychiatrist):
        with pytest.raises(NotFoundError) as exc_info:
            service.book_appointment(999, psychiatrist.id, at(2025, 1, 10, 10))
        assert exc_info.value.detail == "Patient not found"

    def test_missing_psychiatrist_reported_before_past_time(self, service, patient):
        with pytest.raises(NotFoundError):
            service.book_appointment(patient.id, 999, at(2024, 1, 1, 10))

    def test_missing_patient_reported_before_past_time(self, service, psychiatrist):
        with pytest.raises(NotFoundError):
            service.book_appointment(999, psychiatrist.id, at(2024, 1, 1, 10))

    def test_past_time_reported_before_conflict(self, db_session, patient, psychiatrist, sender):
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))
        later_service = AppointmentService(
            db_session, notifications=NotificationService(sender=sender),
            clock=lambda: at(2025, 1, 11, 0)
        )
        with pytest.raises(InvalidInputError):
            later_service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10, 20))

    def test_booking_sends_confirmation_to_both_parties(self, service, patient, psychiatrist, sender):
        service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))

        recipients = [mail["to"] for mail in sender.sent]
        assert recipients == ["alice@example.com", "bob@example.com"]
        assert sender.sent[0]["subject"] == "Your Appointment Has Been Booked"
        assert "Dr Bob" in sender.sent[0]["text"]

    def test_notification_failure_does_not_fail_booking(self, db_session, patient, psychiatrist):
        service = AppointmentService(
            db_session,
            notifications=NotificationService(sender=FakeSender(fail=True)),
            clock=lambda: NOW,
        )
        appointment = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))

        assert appointment.status == AppointmentStatus.SCHEDULED
        assert db_session.query(Appointment).count() == 1

    def test_failed_precondition_persists_nothing(self, service, db_session, patient, psychiatrist, sender):
        with pytest.raises(InvalidInputError):
            service.book_appointment(patient.id, psychiatrist.id, at(2024, 1, 1, 10))

        assert db_session.query(Appointment).count() == 0
        assert sender.sent == []


class TestBookingAtomicity:

    def test_psychiatrist_profile_is_locked_for_update(self, service):
        statement = service.psychiatrist_lock_query(7).statement

        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE OF psychiatrists" in sql

    def test_lock_is_taken_before_overlap_check(self, service, monkeypatch, patient, psychiatrist):
        calls = []
        lock = service._lock_psychiatrist
        overlapping = service.find_overlapping

        def tracked_lock(psychiatrist_id):
            calls.append("lock")
            return lock(psychiatrist_id)

        def tracked_overlapping(psychiatrist_id, scheduled_time):
            calls.append("overlap")
            return overlapping(psychiatrist_id, scheduled_time)

        monkeypatch.setattr(service, "_lock_psychiatrist", tracked_lock)
        monkeypatch.setattr(service, "find_overlapping", tracked_overlapping)

        service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))

        assert calls == ["lock", "overlap"]


class TestOverlapWindow:

    @pytest.fixture
    def existing(self, db_session, other_patient, psychiatrist):
        return create_appointment(db_session, other_patient, psychiatrist, at(2025, 1, 10, 10))

    @pytest.mark.parametrize("offset_minutes", [-90, -30, 0, 20, 30])
    def test_slots_inside_window_conflict(self, service, patient, psychiatrist, existing, offset_minutes):
        candidate = existing.scheduled_time + timedelta(minutes=offset_minutes)
        with pytest.raises(ConflictError):
            service.book_appointment(patient.id, psychiatrist.id, candidate)

    @pytest.mark.parametrize("offset_minutes", [-91, -120, 31, 100])
    def test_slots_outside_window_succeed(self, service, patient, psychiatrist, existing, offset_minutes):
        candidate = existing.scheduled_time + timedelta(minutes=offset_minutes)
        appointment = service.book_appointment(patient.id, psychiatrist.id, candidate)

        assert appointment.status == AppointmentStatus.SCHEDULED

    @pytest.mark.parametrize("status", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED])
    def test_inactive_appointments_do_not_block(self, service, db_session, patient, other_patient, psychiatrist, status):
        create_appointment(db_session, other_patient, psychiatrist, at(2025, 1, 10, 10), status=status)

        appointment = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))
        assert appointment.status == AppointmentStatus.SCHEDULED

    def test_pending_appointments_block(self, service, db_session, patient, other_patient, psychiatrist):
        create_appointment(db_session, other_patient, psychiatrist, at(2025, 1, 10, 10), status=AppointmentStatus.PENDING)

        with pytest.raises(ConflictError):
            service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10, 15))

    def test_other_psychiatrist_same_time_is_free(self, service, patient, other_psychiatrist, existing):
        appointment = service.book_appointment(patient.id, other_psychiatrist.id, existing.scheduled_time)

        assert appointment.psychiatrist_id == other_psychiatrist.id

    def test_booking_scenario(self, service, patient, other_patient, psychiatrist):
        first = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))
        assert first.status == AppointmentStatus.SCHEDULED

        with pytest.raises(ConflictError):
            service.book_appointment(other_patient.id, psychiatrist.id, at(2025, 1, 10, 10, 20))

        second = service.book_appointment(other_patient.id, psychiatrist.id, at(2025, 1, 10, 12))
        assert second.status == AppointmentStatus.SCHEDULED


class TestCancellation:

    def test_cancel_twice(self, service, patient, psychiatrist):
        appointment = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))

        cancelled = service.cancel_appointment(appointment.id, patient.id)
        assert cancelled.status == AppointmentStatus.CANCELLED

        with pytest.raises(NotFoundError):
            service.cancel_appointment(appointment.id, patient.id)

    def test_cancel_frees_the_slot(self, service, patient, other_patient, psychiatrist):
        appointment = service.book_appointment(patient.id, psychiatrist.id, at(2025, 1, 10, 10))
        service.cancel_appointment(appointment.id, patient.id)

        rebooked = service.book_appointment(other_patient.id, psychiatrist.id, at(2025, 1, 10, 10))
        assert rebooked.status == AppointmentStatus.SCHEDULED

    def test_cancel_someone_elses_appointment_not_found(self, service, db_session, patient, other_patient, psychiatrist):
        appointment = create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))

        with pytest.raises(NotFoundError):
            service.cancel_appointment(appointment.id, other_patient.id)

        db_session.refresh(appointment)
        assert appointment.status == AppointmentStatus.SCHEDULED

    def test_cancel_missing_appointment_not_found(self, service, patient):
        with pytest.raises(NotFoundError):
            service.cancel_appointment(12345, patient.id)

    def test_cancel_completed_not_found(self, service, db_session, patient, psychiatrist):
        appointment = create_appointment(
            db_session, patient, psychiatrist, at(2025, 1, 10, 10), status=AppointmentStatus.COMPLETED
        )
        with pytest.raises(NotFoundError):
            service.cancel_appointment(appointment.id, patient.id)

    def test_cancel_pending(self, service, db_session, patient, psychiatrist):
        appointment = create_appointment(
            db_session, patient, psychiatrist, at(2025, 1, 10, 10), status=AppointmentStatus.PENDING
        )
        assert service.cancel_appointment(appointment.id, patient.id).status == AppointmentStatus.CANCELLED

    def test_cancel_sends_notice_to_patient(self, service, db_session, patient, psychiatrist, sender):
        appointment = create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))

        service.cancel_appointment(appointment.id, patient.id)

        assert [mail["to"] for mail in sender.sent] == ["alice@example.com"]
        assert sender.sent[0]["subject"] == "Your Appointment Has Been Cancelled"

    def test_notification_failure_does_not_fail_cancel(self, db_session, patient, psychiatrist):
        appointment = create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))
        service = AppointmentService(
            db_session, notifications=NotificationService(sender=FakeSender(fail=True)), clock=lambda: NOW
        )

        assert service.cancel_appointment(appointment.id, patient.id).status == AppointmentStatus.CANCELLED


class TestStatusUpdate:

    @pytest.fixture
    def appointment(self, db_session, patient, psychiatrist):
        return create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))

    @pytest.mark.parametrize("new_status", ["Scheduled", "Completed", "Cancelled", "Pending", "Bogus"])
    def test_non_owner_always_not_found(self, service, appointment, other_psychiatrist, new_status):
        with pytest.raises(NotFoundError):
            service.update_status(appointment.id, other_psychiatrist.id, new_status)

    def test_missing_appointment_not_found(self, service, psychiatrist):
        with pytest.raises(NotFoundError):
            service.update_status(12345, psychiatrist.id, AppointmentStatus.COMPLETED)

    @pytest.mark.parametrize("new_status", ["Pending", "Bogus"])
    def test_status_outside_allowed_set_is_invalid(self, service, appointment, psychiatrist, new_status):
        with pytest.raises(InvalidInputError):
            service.update_status(appointment.id, psychiatrist.id, new_status)

    def test_complete(self, service, appointment, psychiatrist, sender):
        updated = service.update_status(appointment.id, psychiatrist.id, AppointmentStatus.COMPLETED)

        assert updated.status == AppointmentStatus.COMPLETED
        assert sender.sent == []

    def test_repeated_complete_is_invalid_state(self, service, appointment, psychiatrist):
        service.update_status(appointment.id, psychiatrist.id, "Completed")

        for _ in range(2):
            with pytest.raises(InvalidStateError):
                service.update_status(appointment.id, psychiatrist.id, "Completed")

    @pytest.mark.parametrize("new_status", ["Scheduled", "Cancelled"])
    def test_completed_is_terminal(self, service, appointment, psychiatrist, new_status):
        service.update_status(appointment.id, psychiatrist.id, "Completed")

        with pytest.raises(InvalidStateError):
            service.update_status(appointment.id, psychiatrist.id, new_status)

    def test_cancel_sends_notice(self, service, appointment, psychiatrist, sender):
        updated = service.update_status(appointment.id, psychiatrist.id, "Cancelled")

        assert updated.status == AppointmentStatus.CANCELLED
        assert [mail["to"] for mail in sender.sent] == ["alice@example.com"]

    def test_cancelled_is_terminal(self, service, appointment, psychiatrist, sender):
        service.update_status(appointment.id, psychiatrist.id, "Cancelled")

        with pytest.raises(InvalidStateError):
            service.update_status(appointment.id, psychiatrist.id, "Cancelled")
        assert len(sender.sent) == 1

    def test_scheduled_to_scheduled_is_noop(self, service, appointment, psychiatrist, sender):
        updated = service.update_status(appointment.id, psychiatrist.id, "Scheduled")

        assert updated.status == AppointmentStatus.SCHEDULED
        assert sender.sent == []

    def test_pending_can_be_confirmed(self, service, db_session, patient, psychiatrist):
        pending = create_appointment(
            db_session, patient, psychiatrist, at(2025, 1, 11, 10), status=AppointmentStatus.PENDING
        )
        updated = service.update_status(pending.id, psychiatrist.id, "Scheduled")

        assert updated.status == AppointmentStatus.SCHEDULED


class TestTransitions:

    @pytest.mark.parametrize("current", [AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED])
    @pytest.mark.parametrize("new", [AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED])
    def test_open_statuses_can_move(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize("current", [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED])
    @pytest.mark.parametrize("new", list(AppointmentStatus))
    def test_terminal_statuses_cannot_move(self, current, new):
        assert not can_transition(current, new)

    @pytest.mark.parametrize("current", list(AppointmentStatus))
    def test_nothing_returns_to_pending(self, current):
        assert not can_transition(current, AppointmentStatus.PENDING)


class TestQueries:

    def test_patient_history_newest_first(self, service, db_session, patient, psychiatrist):
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 12, 10))
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 11, 10), status=AppointmentStatus.CANCELLED)

        history = service.list_patient_appointments(patient.id)

        assert [a.scheduled_time.day for a in history] == [12, 11, 10]

    def test_patient_history_filters(self, service, db_session, patient, other_patient, psychiatrist):
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 11, 10), status=AppointmentStatus.CANCELLED)
        create_appointment(db_session, patient, psychiatrist, at(2025, 2, 1, 10))
        create_appointment(db_session, other_patient, psychiatrist, at(2025, 1, 10, 14))

        scheduled = service.list_patient_appointments(patient.id, status=AppointmentStatus.SCHEDULED)
        assert len(scheduled) == 2

        january = service.list_patient_appointments(
            patient.id, date_from=date(2025, 1, 1), date_to=date(2025, 1, 31)
        )
        assert len(january) == 2

    def test_psychiatrist_list_is_paginated(self, service, db_session, patient, psychiatrist):
        for day in range(10, 15):
            create_appointment(db_session, patient, psychiatrist, at(2025, 1, day, 10))

        page, total, pages = service.list_psychiatrist_appointments(psychiatrist.id, page=2, limit=2)

        assert total == 5
        assert pages == 3
        assert [a.scheduled_time.day for a in page] == [12, 13]

    def test_psychiatrist_list_date_to_covers_whole_day(self, service, db_session, patient, psychiatrist):
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 23, 30))
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 11, 9))

        page, total, _ = service.list_psychiatrist_appointments(psychiatrist.id, date_to=date(2025, 1, 10))

        assert total == 1
        assert page[0].scheduled_time == at(2025, 1, 10, 23, 30)

    def test_psychiatrist_list_only_own(self, service, db_session, patient, psychiatrist, other_psychiatrist):
        create_appointment(db_session, patient, psychiatrist, at(2025, 1, 10, 10))
        create_appointment(db_session, patient, other_psychiatrist, at(2025, 1, 10, 10))

        _, total, _ = service.list_psychiatrist_appointments(other_psychiatrist.id)
        assert total == 1
