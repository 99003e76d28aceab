from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Text
from sqlalchemy.orm import relationship

from ..core.database import Base

class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Intake information, copied onto appointments when not supplied
    previous_diagnosis = Column(Boolean, nullable=False, default=False)
    symptoms = Column(Text, nullable=True)
    short_description = Column(String(255), nullable=True)

    # Relationships
    user = relationship("User", back_populates="patient")

    def __repr__(self):
        return f"<Patient(id={self.id}, user_id={self.user_id})>"
