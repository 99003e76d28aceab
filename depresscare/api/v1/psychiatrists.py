from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...api.deps import get_psychiatrist_user, get_appointment_service
from ...models.user import User
from ...models.appointment import AppointmentStatus
from ...services.appointment_service import AppointmentService
from ...services.patient_care_service import PatientCareService
from ...services.psychiatrist_service import PsychiatristService
from ...schemas.appointment import (
    AppointmentStatusUpdate, AppointmentResponse, AppointmentDetail, AppointmentPage, MessageResponse
)
from ...schemas.patient import PatientDetail, PatientList, PatientSummary
from ...schemas.psychiatrist import PsychiatristProfile, PsychiatristProfileUpdate
from ...schemas.recommendation import RecommendationCreate, RecommendationResponse

router = APIRouter(prefix="/psychiatrists", tags=["Psychiatrists"])

@router.get("/appointments", response_model=AppointmentPage)
async def get_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_psychiatrist_user),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """List the current psychiatrist's appointments."""
    appointments, total, total_pages = appointment_service.list_psychiatrist_appointments(
        current_user.id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return AppointmentPage(
        count=total,
        total_pages=total_pages,
        current_page=page,
        data=[AppointmentDetail.model_validate(a) for a in appointments]
    )

@router.patch("/appointments/{appointment_id}/status", response_model=MessageResponse)
async def update_appointment_status(
    appointment_id: int,
    status_data: AppointmentStatusUpdate,
    current_user: User = Depends(get_psychiatrist_user),
    appointment_service: AppointmentService = Depends(get_appointment_service)
):
    """Update the status of one of the current psychiatrist's appointments."""
    appointment = appointment_service.update_status(
        appointment_id, current_user.id, status_data.status
    )
    return MessageResponse(
        message="Appointment status updated successfully",
        data=AppointmentResponse.model_validate(appointment)
    )

@router.get("/profile", response_model=PsychiatristProfile)
async def get_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_psychiatrist_user)
):
    """Get the current psychiatrist's profile."""
    profile = PsychiatristService(db).get_profile(current_user.id)
    return PsychiatristProfile.model_validate(profile)

@router.put("/profile", response_model=PsychiatristProfile)
async def update_profile(
    update_data: PsychiatristProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_psychiatrist_user)
):
    """Update the current psychiatrist's account and profile fields."""
    profile = PsychiatristService(db).update_profile(current_user.id, update_data)
    return PsychiatristProfile.model_validate(profile)

@router.get("/patients", response_model=PatientList)
async def get_patients(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_psychiatrist_user)
):
    """List patients who have had appointments with the current psychiatrist."""
    patients = PatientCareService(db).list_patients(current_user.id)
    return PatientList(
        count=len(patients),
        data=[PatientSummary.from_user(patient) for patient in patients]
    )

@router.get("/patients/{patient_id}", response_model=PatientDetail)
async def get_patient_details(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_psychiatrist_user)
):
    """Get intake details of an associated patient."""
    patient = PatientCareService(db).get_patient_details(current_user.id, patient_id)
    return PatientDetail.from_user(patient)

@router.post(
    "/recommendations",
    response_model=RecommendationResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_recommendation(
    recommendation_data: RecommendationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_psychiatrist_user)
):
    """Leave a recommendation for an associated patient."""
    recommendation = PatientCareService(db).create_recommendation(
        current_user.id, recommendation_data.patient_id, recommendation_data.content
    )
    return RecommendationResponse.model_validate(recommendation)
