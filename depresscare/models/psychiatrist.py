from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Psychiatrist(Base):
    __tablename__ = "psychiatrists"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Professional information
    license_number = Column(String(50), nullable=False, unique=True)
    specialization = Column(String(100), nullable=True)
    qualifications = Column(Text, nullable=True)
    years_of_experience = Column(Integer, nullable=True)
    bio = Column(Text, nullable=True)

    # Availability
    is_available = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="psychiatrist")

    @property
    def full_name(self):
        return self.user.full_name if self.user else None

    @property
    def email(self):
        return self.user.email if self.user else None

    @property
    def phone(self):
        return self.user.phone if self.user else None

    def __repr__(self):
        return f"<Psychiatrist(id={self.id}, user_id={self.user_id}, specialization='{self.specialization}')>"
