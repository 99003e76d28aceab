from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecommendationCreate(BaseModel):
    patient_id: int = Field(..., gt=0)
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def validate_content(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Recommendation content is required")
        return normalized


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    psychiatrist_id: int
    patient_id: int
    content: str
    psychiatrist_name: Optional[str] = None
    specialization: Optional[str] = None
    created_at: Optional[datetime] = None


class RecommendationList(BaseModel):
    count: int
    data: List[RecommendationResponse]
