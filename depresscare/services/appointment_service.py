from sqlalchemy.orm import Session, joinedload
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Tuple
import logging
import math

from ..models.user import User
from ..models.psychiatrist import Psychiatrist
from ..models.appointment import (
    Appointment, AppointmentStatus, INACTIVE_STATUSES, CANCELLABLE_STATUSES
)
from ..core.config import settings
from ..core.security import UserRole
from ..core.permissions import owns_resource
from ..core.exceptions import (
    NotFoundError, InvalidInputError, ConflictError, InvalidStateError
)
from .meeting_service import MeetingLinkGenerator
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

# Statuses a psychiatrist may set
UPDATABLE_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
)

# Permitted moves; terminal statuses map to nothing
TRANSITIONS = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in TRANSITIONS.get(current, set())


def to_utc_naive(value: datetime) -> datetime:
    """Normalize to the naive UTC datetimes stored in the database."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AppointmentService:
    def __init__(
        self,
        db: Session,
        notifications: Optional[NotificationService] = None,
        meeting_links: Optional[MeetingLinkGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationService()
        self.meeting_links = meeting_links or MeetingLinkGenerator()
        self.clock = clock or datetime.utcnow
        self.window_before = timedelta(minutes=settings.BOOKING_WINDOW_BEFORE_MINUTES)
        self.window_after = timedelta(minutes=settings.BOOKING_WINDOW_AFTER_MINUTES)

    def book_appointment(
        self,
        patient_id: int,
        psychiatrist_id: int,
        scheduled_time: datetime,
        previous_diagnosis: Optional[bool] = None,
        symptoms: Optional[str] = None,
        short_description: Optional[str] = None,
    ) -> Appointment:
        """
        Book a session with a psychiatrist.

        Checks run in a fixed order and the first failure wins: psychiatrist
        exists, patient exists, time is in the future, slot is free. The
        psychiatrist profile row stays locked until commit so two bookings
        for the same psychiatrist cannot both pass the overlap check.
        """
        try:
            psychiatrist = self._lock_psychiatrist(psychiatrist_id)
            if not psychiatrist:
                raise NotFoundError("Psychiatrist not found")

            patient = self.db.query(User).filter(User.id == patient_id).first()
            if not patient:
                raise NotFoundError("Patient not found")

            scheduled_time = to_utc_naive(scheduled_time)
            if scheduled_time <= self.clock():
                raise InvalidInputError("Appointment time must be in the future")

            if self.find_overlapping(psychiatrist_id, scheduled_time):
                raise ConflictError("Time slot not available")

            profile = patient.patient
            if previous_diagnosis is None:
                previous_diagnosis = profile.previous_diagnosis if profile else False
            if symptoms is None and profile:
                symptoms = profile.symptoms
            if short_description is None and profile:
                short_description = profile.short_description

            appointment = Appointment(
                patient_id=patient_id,
                psychiatrist_id=psychiatrist_id,
                scheduled_time=scheduled_time,
                status=AppointmentStatus.SCHEDULED,
                meeting_link=self.meeting_links.generate(),
                previous_diagnosis=bool(previous_diagnosis),
                symptoms=symptoms,
                short_description=short_description,
            )
            self.db.add(appointment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} booked: patient {patient_id} with "
            f"psychiatrist {psychiatrist_id} at {scheduled_time.isoformat()}"
        )

        self.notifications.send_booking_confirmation(
            user_email=patient.email,
            user_name=patient.full_name or patient.email,
            psychiatrist_name=psychiatrist.user.full_name or psychiatrist.user.email,
            appointment_time=appointment.scheduled_time,
            meeting_link=appointment.meeting_link,
        )
        self.notifications.send_new_booking_notice(
            user_email=psychiatrist.user.email,
            user_name=psychiatrist.user.full_name or psychiatrist.user.email,
            patient_name=patient.full_name or patient.email,
            appointment_time=appointment.scheduled_time,
            meeting_link=appointment.meeting_link,
        )
        return appointment

    def cancel_appointment(self, appointment_id: int, patient_id: int) -> Appointment:
        """Cancel one of the patient's own open appointments."""
        try:
            appointment = self.db.query(Appointment).filter(
                Appointment.id == appointment_id
            ).with_for_update().first()

            # Missing, foreign and closed appointments look the same to the caller
            if (
                not appointment
                or not owns_resource(patient_id, appointment.patient_id)
                or appointment.status not in CANCELLABLE_STATUSES
            ):
                raise NotFoundError("Appointment not found or already cancelled/completed")

            appointment.status = AppointmentStatus.CANCELLED
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} cancelled by patient {patient_id}")

        self._notify_cancellation(appointment)
        return appointment

    def update_status(
        self,
        appointment_id: int,
        psychiatrist_id: int,
        new_status,
    ) -> Appointment:
        """Move one of the psychiatrist's appointments to a new status."""
        try:
            appointment = self.db.query(Appointment).filter(
                Appointment.id == appointment_id
            ).with_for_update().first()

            if not appointment or not owns_resource(psychiatrist_id, appointment.psychiatrist_id):
                raise NotFoundError("Appointment not found")

            try:
                new_status = AppointmentStatus(new_status)
            except ValueError:
                new_status = None
            if new_status not in UPDATABLE_STATUSES:
                allowed = ", ".join(s.value for s in UPDATABLE_STATUSES)
                raise InvalidInputError(f"Invalid status. Allowed values: {allowed}")

            old_status = appointment.status
            if not can_transition(old_status, new_status):
                raise InvalidStateError(
                    f"Cannot change appointment status from {old_status.value} to {new_status.value}"
                )

            appointment.status = new_status
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} status {old_status.value} -> {new_status.value} "
            f"by psychiatrist {psychiatrist_id}"
        )

        if new_status == AppointmentStatus.CANCELLED and old_status != AppointmentStatus.CANCELLED:
            self._notify_cancellation(appointment)
        return appointment

    def find_overlapping(
        self,
        psychiatrist_id: int,
        scheduled_time: datetime,
    ) -> List[Appointment]:
        """Active appointments of the psychiatrist inside the booking window."""
        window_start = scheduled_time - self.window_before
        window_end = scheduled_time + self.window_after

        return self.db.query(Appointment).filter(
            Appointment.psychiatrist_id == psychiatrist_id,
            Appointment.status.notin_(INACTIVE_STATUSES),
            Appointment.scheduled_time >= window_start,
            Appointment.scheduled_time <= window_end,
        ).all()

    def list_patient_appointments(
        self,
        patient_id: int,
        status: Optional[AppointmentStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Appointment]:
        """Appointment history for a patient, newest first."""
        query = self._filtered_query(status, date_from, date_to).filter(
            Appointment.patient_id == patient_id
        )
        return query.order_by(Appointment.scheduled_time.desc()).all()

    def list_psychiatrist_appointments(
        self,
        psychiatrist_id: int,
        status: Optional[AppointmentStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Appointment], int, int]:
        """One page of a psychiatrist's appointments, soonest first.

        Returns the page, the total count and the number of pages.
        """
        query = self._filtered_query(status, date_from, date_to).filter(
            Appointment.psychiatrist_id == psychiatrist_id
        )
        total = query.count()
        appointments = query.order_by(
            Appointment.scheduled_time.asc()
        ).offset((page - 1) * limit).limit(limit).all()
        return appointments, total, math.ceil(total / limit)

    def _lock_psychiatrist(self, psychiatrist_id: int) -> Optional[Psychiatrist]:
        return self.psychiatrist_lock_query(psychiatrist_id).first()

    def psychiatrist_lock_query(self, psychiatrist_id: int):
        """Profile lookup that holds a row lock until the booking commits."""
        return self.db.query(Psychiatrist).join(
            User, Psychiatrist.user_id == User.id
        ).filter(
            Psychiatrist.user_id == psychiatrist_id,
            User.role == UserRole.PSYCHIATRIST,
        ).with_for_update(of=Psychiatrist)

    def _filtered_query(
        self,
        status: Optional[AppointmentStatus],
        date_from: Optional[date],
        date_to: Optional[date],
    ):
        query = self.db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.psychiatrist),
        )
        if status:
            query = query.filter(Appointment.status == status)
        if date_from:
            query = query.filter(Appointment.scheduled_time >= datetime.combine(date_from, time.min))
        if date_to:
            # Include the whole last day
            query = query.filter(Appointment.scheduled_time <= datetime.combine(date_to, time.max))
        return query

    def _notify_cancellation(self, appointment: Appointment) -> None:
        patient = appointment.patient
        psychiatrist = appointment.psychiatrist
        self.notifications.send_cancellation_notice(
            user_email=patient.email,
            user_name=patient.full_name or patient.email,
            psychiatrist_name=psychiatrist.full_name or psychiatrist.email,
            appointment_time=appointment.scheduled_time,
        )
