from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class PsychiatristEnroll(BaseModel):
    user_id: int = Field(..., gt=0)
    license_number: str = Field(..., min_length=1, max_length=50)
    specialization: Optional[str] = Field(None, max_length=100)
    qualifications: Optional[str] = None
    years_of_experience: Optional[int] = Field(None, ge=0)
    bio: Optional[str] = None
    is_available: bool = True


class PsychiatristResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    full_name: Optional[str] = None
    license_number: str
    specialization: Optional[str] = None
    qualifications: Optional[str] = None
    years_of_experience: Optional[int] = None
    bio: Optional[str] = None
    is_available: bool = True


class PsychiatristProfile(PsychiatristResponse):
    email: str
    phone: Optional[str] = None


class PsychiatristProfileUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    license_number: Optional[str] = Field(None, min_length=1, max_length=50)
    specialization: Optional[str] = Field(None, max_length=100)
    qualifications: Optional[str] = None
    years_of_experience: Optional[int] = Field(None, ge=0)
    bio: Optional[str] = None
    is_available: Optional[bool] = None

    @field_validator("full_name", "email", "license_number", "is_available")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("Field cannot be blank")
        return value


class PsychiatristList(BaseModel):
    count: int
    data: List[PsychiatristResponse]
