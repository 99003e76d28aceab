"""
Psychiatrist access to patients they have seen, and the recommendations they
leave for them.

A psychiatrist is associated with a patient once the two share at least one
appointment, whatever its status. Every per-patient operation checks that
association first and answers 403 without it.
"""
from sqlalchemy.orm import Session, joinedload
from typing import List
import logging

from ..models.user import User
from ..models.appointment import Appointment
from ..models.recommendation import Recommendation
from ..core.exceptions import NotFoundError, ForbiddenError

logger = logging.getLogger(__name__)

class PatientCareService:
    def __init__(self, db: Session):
        self.db = db

    def is_associated(self, psychiatrist_id: int, patient_id: int) -> bool:
        return self.db.query(Appointment.id).filter(
            Appointment.psychiatrist_id == psychiatrist_id,
            Appointment.patient_id == patient_id,
        ).first() is not None

    def list_patients(self, psychiatrist_id: int) -> List[User]:
        """Distinct patients with any appointment with the psychiatrist, by name."""
        patient_ids = self.db.query(Appointment.patient_id).filter(
            Appointment.psychiatrist_id == psychiatrist_id
        ).distinct()

        return self.db.query(User).options(joinedload(User.patient)).filter(
            User.id.in_(patient_ids)
        ).order_by(User.full_name).all()

    def get_patient_details(self, psychiatrist_id: int, patient_id: int) -> User:
        self._require_association(psychiatrist_id, patient_id)

        patient = self.db.query(User).options(joinedload(User.patient)).filter(
            User.id == patient_id
        ).first()
        if not patient:
            raise NotFoundError("Patient not found")
        return patient

    def create_recommendation(self, psychiatrist_id: int, patient_id: int, content: str) -> Recommendation:
        self._require_association(psychiatrist_id, patient_id)

        recommendation = Recommendation(
            psychiatrist_id=psychiatrist_id,
            patient_id=patient_id,
            content=content,
        )
        self.db.add(recommendation)
        self.db.commit()
        self.db.refresh(recommendation)

        logger.info(
            f"Recommendation {recommendation.id} created by psychiatrist {psychiatrist_id} "
            f"for patient {patient_id}"
        )
        return recommendation

    def list_recommendations(self, patient_id: int) -> List[Recommendation]:
        """Recommendations left for a patient, newest first."""
        return self.db.query(Recommendation).options(
            joinedload(Recommendation.psychiatrist).joinedload(User.psychiatrist)
        ).filter(
            Recommendation.patient_id == patient_id
        ).order_by(Recommendation.created_at.desc(), Recommendation.id.desc()).all()

    def _require_association(self, psychiatrist_id: int, patient_id: int) -> None:
        if not self.is_associated(psychiatrist_id, patient_id):
            raise ForbiddenError("Patient not associated with this psychiatrist")
