from typing import Any, Literal

from pydantic import BaseModel, Field

ConfidenceLevel = Literal["high", "medium", "low"]


class ClassificationInput(BaseModel):
    brand: str = Field(min_length=1)
    manufacturer: str = Field(min_length=1)
    plastic_type: str | None = None
    admin_notes: str | None = None
    confidence_level: ConfidenceLevel = "medium"
    product_type: str | None = None
    beach_id: int | None = None
    company_id: int | None = None
    beach_latitude: float | None = Field(default=None, ge=-90, le=90)
    beach_longitude: float | None = Field(default=None, ge=-180, le=180)


class ClassifyRequest(BaseModel):
    # Kept loose so the engine reports bad values as a structured failure
    brand: str
    manufacturer: str
    plastic_type: str | None = None
    admin_notes: str | None = None
    confidence_level: str = "medium"
    product_type: str | None = None
    beach_id: int | None = None
    company_id: int | None = None
    beach_latitude: float | None = None
    beach_longitude: float | None = None


class RejectRequest(BaseModel):
    reason: str | None = None


class ClassificationResponse(BaseModel):
    id: str
    contribution_id: str
    brand: str
    manufacturer: str
    plastic_type: str | None = None
    product_type: str | None = None
    confidence_level: str
    classified_by: str
    classified_at: str
    admin_notes: str | None = None
    beach_id: int | None = None
    company_id: int | None = None
    beach_latitude: float | None = None
    beach_longitude: float | None = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class ReviewHistoryResponse(BaseModel):
    id: str
    contribution_id: str
    admin_id: str
    action: str
    previous_status: str | None = None
    new_status: str | None = None
    changes: dict[str, Any] | None = None
    reason: str | None = None
    created_at: str

    model_config = {"from_attributes": True}
