from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..core.database import Base
from ..core.security import UserRole

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False)
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship(
        "Patient", back_populates="user", uselist=False, cascade="all, delete"
    )
    psychiatrist = relationship(
        "Psychiatrist", back_populates="user", uselist=False, cascade="all, delete"
    )
    patient_appointments = relationship(
        "Appointment",
        foreign_keys="Appointment.patient_id",
        back_populates="patient",
        cascade="all, delete",
    )
    psychiatrist_appointments = relationship(
        "Appointment",
        foreign_keys="Appointment.psychiatrist_id",
        back_populates="psychiatrist",
        cascade="all, delete",
    )
    recommendations_received = relationship(
        "Recommendation",
        foreign_keys="Recommendation.patient_id",
        back_populates="patient",
        cascade="all, delete",
    )
    recommendations_given = relationship(
        "Recommendation",
        foreign_keys="Recommendation.psychiatrist_id",
        back_populates="psychiatrist",
        cascade="all, delete",
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
