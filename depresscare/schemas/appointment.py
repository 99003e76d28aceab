from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.appointment import AppointmentStatus


class AppointmentCreate(BaseModel):
    psychiatrist_id: int = Field(..., gt=0)
    scheduled_time: datetime

    # Falls back to the patient profile when omitted
    previous_diagnosis: Optional[bool] = None
    symptoms: Optional[str] = None
    short_description: Optional[str] = Field(None, max_length=255)

    @field_validator("symptoms", "short_description")
    @classmethod
    def strip_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class ParticipantSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: Optional[str] = None
    email: str


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    psychiatrist_id: int
    scheduled_time: datetime
    status: AppointmentStatus
    meeting_link: Optional[str] = None
    previous_diagnosis: bool = False
    symptoms: Optional[str] = None
    short_description: Optional[str] = None
    created_at: Optional[datetime] = None


class AppointmentDetail(AppointmentResponse):
    patient: Optional[ParticipantSummary] = None
    psychiatrist: Optional[ParticipantSummary] = None


class AppointmentList(BaseModel):
    count: int
    data: List[AppointmentDetail]


class AppointmentPage(AppointmentList):
    total_pages: int
    current_page: int


class MessageResponse(BaseModel):
    message: str
    data: Optional[AppointmentResponse] = None
