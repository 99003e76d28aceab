from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_admin_user
from ...services.auth_service import AuthService
from ...services.psychiatrist_service import PsychiatristService
from ...schemas.auth import UserResponse
from ...schemas.psychiatrist import PsychiatristEnroll, PsychiatristResponse
from ...models.user import User

router = APIRouter(prefix="/admin", tags=["Administration"])

@router.get("/users")
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user)
):
    """List all users (admin only)."""
    users = AuthService(db).list_users(skip=skip, limit=limit)
    return [UserResponse.model_validate(user) for user in users]

@router.patch("/users/{user_id}/status")
async def update_user_status(
    user_id: int,
    is_active: bool,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user)
):
    """Activate or deactivate a user (admin only)."""
    AuthService(db).set_user_active(user_id, is_active)
    return {"message": f"User {'activated' if is_active else 'deactivated'} successfully"}

@router.post(
    "/psychiatrists",
    response_model=PsychiatristResponse,
    status_code=status.HTTP_201_CREATED
)
async def enroll_psychiatrist(
    enroll_data: PsychiatristEnroll,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_admin_user)
):
    """Enroll an existing user as a psychiatrist (admin only)."""
    profile = PsychiatristService(db).enroll_psychiatrist(enroll_data)
    return PsychiatristResponse.model_validate(profile)
