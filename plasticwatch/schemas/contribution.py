from datetime import datetime

from pydantic import BaseModel, Field


class ContributionCreate(BaseModel):
    id: str | None = None
    # Defaults to the caller; anything else is refused
    user_id: str | None = None
    created_at: datetime | None = None
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    beach_name: str | None = None
    beach_latitude: float | None = Field(default=None, ge=-90, le=90)
    beach_longitude: float | None = Field(default=None, ge=-180, le=180)
    brand_suggestion: str | None = None
    plastic_type_suggestion: str | None = None
    product_type_suggestion: str | None = None
    notes: str | None = None
    product_image_url: str = Field(min_length=1)
    backside_image_url: str | None = None
    recycling_image_url: str | None = None
    manufacturer_image_url: str | None = None


class ContributionUpdate(BaseModel):
    beach_name: str | None = None
    brand_suggestion: str | None = None
    plastic_type_suggestion: str | None = None
    product_type_suggestion: str | None = None
    notes: str | None = None


class ContributionResponse(BaseModel):
    id: str
    user_id: str
    status: str
    created_at: str
    updated_at: str
    latitude: float
    longitude: float
    beach_name: str | None = None
    beach_latitude: float | None = None
    beach_longitude: float | None = None
    brand_suggestion: str | None = None
    plastic_type_suggestion: str | None = None
    product_type_suggestion: str | None = None
    notes: str | None = None
    product_image_url: str
    backside_image_url: str | None = None
    recycling_image_url: str | None = None
    manufacturer_image_url: str | None = None

    model_config = {"from_attributes": True}
