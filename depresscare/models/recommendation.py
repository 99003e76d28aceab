from sqlalchemy import Column, Integer, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Recommendation(Base):
    __tablename__ = "recommendations"

    id = Column(Integer, primary_key=True, index=True)
    psychiatrist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id], back_populates="recommendations_received")
    psychiatrist = relationship("User", foreign_keys=[psychiatrist_id], back_populates="recommendations_given")

    @property
    def psychiatrist_name(self):
        return self.psychiatrist.full_name if self.psychiatrist else None

    @property
    def specialization(self):
        profile = self.psychiatrist.psychiatrist if self.psychiatrist else None
        return profile.specialization if profile else None

    def __repr__(self):
        return f"<Recommendation(id={self.id}, psychiatrist_id={self.psychiatrist_id}, patient_id={self.patient_id})>"
