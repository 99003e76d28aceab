from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...api.deps import get_patient_user, get_appointment_service
from ...models.user import User
from ...models.appointment import AppointmentStatus
from ...services.appointment_service import AppointmentService
from ...services.patient_care_service import PatientCareService
from ...services.psychiatrist_service import PsychiatristService
from ...schemas.appointment import (
    AppointmentCreate, AppointmentResponse, AppointmentDetail, AppointmentList, MessageResponse
)
from ...schemas.psychiatrist import PsychiatristList, PsychiatristResponse
from ...schemas.recommendation import RecommendationList, RecommendationResponse

router = APIRouter(prefix="/patients", tags=["Patients"])

@router.get("/psychiatrists", response_model=PsychiatristList)
async def search_psychiatrists(
    search: Optional[str] = None,
    specialization: Optional[str] = None,
    available: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_patient_user)
):
    """Search psychiatrists by name, specialization or availability."""
    psychiatrists = PsychiatristService(db).search_psychiatrists(
        search=search, specialization=specialization, available=available
    )
    return PsychiatristList(
        count=len(psychiatrists),
        data=[PsychiatristResponse.model_validate(p) for p in psychiatrists]
    )

@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def book_appointment(
    appointment_data: AppointmentCreate,
    current_user: User = Depends(get_patient_user),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """Book a new appointment with a psychiatrist."""
    appointment = appointment_service.book_appointment(
        patient_id=current_user.id,
        psychiatrist_id=appointment_data.psychiatrist_id,
        scheduled_time=appointment_data.scheduled_time,
        previous_diagnosis=appointment_data.previous_diagnosis,
        symptoms=appointment_data.symptoms,
        short_description=appointment_data.short_description,
    )
    return AppointmentResponse.model_validate(appointment)

@router.get("/appointments", response_model=AppointmentList)
async def get_appointment_history(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    current_user: User = Depends(get_patient_user),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """Get the current patient's appointment history."""
    appointments = appointment_service.list_patient_appointments(
        current_user.id, status=status_filter, date_from=date_from, date_to=date_to
    )
    return AppointmentList(
        count=len(appointments),
        data=[AppointmentDetail.model_validate(a) for a in appointments]
    )

@router.patch("/appointments/{appointment_id}/cancel", response_model=MessageResponse)
async def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_patient_user),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """Cancel one of the current patient's appointments."""
    appointment = appointment_service.cancel_appointment(appointment_id, current_user.id)
    return MessageResponse(
        message="Appointment cancelled successfully",
        data=AppointmentResponse.model_validate(appointment)
    )

@router.get("/recommendations", response_model=RecommendationList)
async def get_recommendations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_patient_user)
):
    """Get recommendations left for the current patient, newest first."""
    recommendations = PatientCareService(db).list_recommendations(current_user.id)
    return RecommendationList(
        count=len(recommendations),
        data=[RecommendationResponse.model_validate(r) for r in recommendations]
    )
