from typing import List, Optional

from pydantic import BaseModel


class PatientSummary(BaseModel):
    id: int
    full_name: Optional[str] = None
    previous_diagnosis: bool = False

    @classmethod
    def from_user(cls, user):
        profile = user.patient
        return cls(
            id=user.id,
            full_name=user.full_name,
            previous_diagnosis=profile.previous_diagnosis if profile else False,
        )


class PatientDetail(PatientSummary):
    email: str
    phone: Optional[str] = None
    symptoms: Optional[str] = None
    short_description: Optional[str] = None

    @classmethod
    def from_user(cls, user):
        profile = user.patient
        return cls(
            id=user.id,
            full_name=user.full_name,
            email=user.email,
            phone=user.phone,
            previous_diagnosis=profile.previous_diagnosis if profile else False,
            symptoms=profile.symptoms if profile else None,
            short_description=profile.short_description if profile else None,
        )


class PatientList(BaseModel):
    count: int
    data: List[PatientSummary]
