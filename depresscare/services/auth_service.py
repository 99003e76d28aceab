from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime
from typing import List
import logging

from ..models.user import User
from ..models.patient import Patient
from ..core.security import (
    verify_password, get_password_hash, create_user_token, UserRole
)
from ..core.exceptions import NotFoundError
from ..schemas.auth import UserLogin, UserRegister, TokenResponse, UserResponse

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new patient together with their patient profile."""
        # Check if user already exists
        existing_user = self.db.query(User).filter(
            User.email == user_data.email
        ).first()

        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        new_user = User(
            email=user_data.email,
            full_name=user_data.full_name,
            phone=user_data.phone,
            password_hash=get_password_hash(user_data.password),
            role=UserRole.PATIENT,
            is_active=True,
        )
        new_user.patient = Patient(
            previous_diagnosis=user_data.previous_diagnosis,
            symptoms=user_data.symptoms,
            short_description=user_data.short_description,
        )

        try:
            self.db.add(new_user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(new_user)

        logger.info(f"Registered patient {new_user.id}")
        return new_user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return an access token."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user or not verify_password(login_data.password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated"
            )

        user.last_login = datetime.utcnow()
        token = create_user_token(user.id, user.email, user.role)
        self.db.commit()

        return TokenResponse(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
            user=UserResponse.model_validate(user)
        )

    def list_users(self, skip: int = 0, limit: int = 10) -> List[User]:
        return self.db.query(User).order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit).all()

    def set_user_active(self, user_id: int, is_active: bool) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")

        user.is_active = is_active
        self.db.commit()
        return user
