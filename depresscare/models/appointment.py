from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Index, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    PENDING = "Pending"
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

# Statuses that no longer hold a slot
INACTIVE_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED)

# Statuses a patient may cancel from
CANCELLABLE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED)

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_psychiatrist_time", "psychiatrist_id", "scheduled_time"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Participants
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    psychiatrist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Appointment details, scheduled_time is naive UTC
    scheduled_time = Column(DateTime, nullable=False)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)
    meeting_link = Column(String(255), nullable=True)

    # Intake
    previous_diagnosis = Column(Boolean, nullable=False, default=False)
    symptoms = Column(Text, nullable=True)
    short_description = Column(String(255), nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id], back_populates="patient_appointments")
    psychiatrist = relationship("User", foreign_keys=[psychiatrist_id], back_populates="psychiatrist_appointments")

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, psychiatrist_id={self.psychiatrist_id}, time='{self.scheduled_time}', status='{self.status}')>"
