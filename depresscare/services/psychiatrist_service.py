from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload
from typing import List, Optional
import logging

from ..models.user import User
from ..models.psychiatrist import Psychiatrist
from ..core.security import UserRole
from ..core.exceptions import NotFoundError, ConflictError
from ..schemas.psychiatrist import PsychiatristEnroll, PsychiatristProfileUpdate

logger = logging.getLogger(__name__)

# Profile fields stored on the user row
USER_PROFILE_FIELDS = ("full_name", "email", "phone")

class PsychiatristService:
    def __init__(self, db: Session):
        self.db = db

    def search_psychiatrists(
        self,
        search: Optional[str] = None,
        specialization: Optional[str] = None,
        available: Optional[bool] = None,
    ) -> List[Psychiatrist]:
        """Psychiatrist directory, filtered by name/specialization text and availability."""
        query = self.db.query(Psychiatrist).join(
            User, Psychiatrist.user_id == User.id
        ).options(joinedload(Psychiatrist.user)).filter(
            User.role == UserRole.PSYCHIATRIST,
            User.is_active == True,  # noqa: E712
        )

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                User.full_name.ilike(pattern),
                Psychiatrist.specialization.ilike(pattern),
            ))
        if specialization:
            query = query.filter(Psychiatrist.specialization == specialization)
        if available is not None:
            query = query.filter(Psychiatrist.is_available == available)

        return query.order_by(User.full_name).all()

    def enroll_psychiatrist(self, enroll_data: PsychiatristEnroll) -> Psychiatrist:
        """Turn an existing user into a psychiatrist with a profile."""
        user = self.db.query(User).filter(User.id == enroll_data.user_id).first()
        if not user:
            raise NotFoundError("User not found")

        if user.psychiatrist:
            raise ConflictError("User is already enrolled as a psychiatrist")

        existing_license = self.db.query(Psychiatrist).filter(
            Psychiatrist.license_number == enroll_data.license_number
        ).first()
        if existing_license:
            raise ConflictError("License number already registered")

        profile = Psychiatrist(
            user_id=user.id,
            license_number=enroll_data.license_number,
            specialization=enroll_data.specialization,
            qualifications=enroll_data.qualifications,
            years_of_experience=enroll_data.years_of_experience,
            bio=enroll_data.bio,
            is_available=enroll_data.is_available,
        )
        user.role = UserRole.PSYCHIATRIST

        self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)

        logger.info(f"User {user.id} enrolled as psychiatrist")
        return profile

    def get_profile(self, user_id: int) -> Psychiatrist:
        profile = self.db.query(Psychiatrist).options(
            joinedload(Psychiatrist.user)
        ).filter(Psychiatrist.user_id == user_id).first()
        if not profile:
            raise NotFoundError("Profile not found")
        return profile

    def update_profile(self, user_id: int, update_data: PsychiatristProfileUpdate) -> Psychiatrist:
        """
        Apply a partial update to a psychiatrist's account and profile.

        Account fields (name, email, phone) live on the user row, the rest on
        the psychiatrist profile. Email and license number stay unique.
        """
        profile = self.get_profile(user_id)
        user = profile.user
        changes = update_data.model_dump(exclude_unset=True)

        email = changes.get("email")
        if email and email != user.email:
            taken = self.db.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise ConflictError("Email already in use by another account")

        license_number = changes.get("license_number")
        if license_number and license_number != profile.license_number:
            taken = self.db.query(Psychiatrist).filter(
                Psychiatrist.license_number == license_number,
                Psychiatrist.id != profile.id,
            ).first()
            if taken:
                raise ConflictError("License number already in use by another psychiatrist")

        for field in USER_PROFILE_FIELDS:
            if field in changes:
                setattr(user, field, changes.pop(field))
        for field, value in changes.items():
            setattr(profile, field, value)

        self.db.commit()
        self.db.refresh(profile)

        logger.info(f"Psychiatrist {user_id} updated profile fields: {sorted(update_data.model_fields_set)}")
        return profile
