from typing import Literal

from pydantic import BaseModel

QueueStatus = Literal["pending", "uploading", "failed", "completed"]


class LatLng(BaseModel):
    lat: float
    lng: float


class BeachLocation(LatLng):
    name: str


class QueuedFormData(BaseModel):
    brand: str
    plastic_type: str
    beach_name: str | None = None
    notes: str | None = None
    location: LatLng
    beach_location: BeachLocation | None = None


class QueuedImage(BaseModel):
    blob: bytes
    name: str


class QueuedImages(BaseModel):
    product_image: QueuedImage
    backside_image: QueuedImage | None = None
    recycling_image: QueuedImage | None = None
    manufacturer_image: QueuedImage | None = None

    def present(self) -> dict[str, QueuedImage]:
        """Return the attached images keyed by slot name, in slot order."""
        slots = {
            "product_image": self.product_image,
            "backside_image": self.backside_image,
            "recycling_image": self.recycling_image,
            "manufacturer_image": self.manufacturer_image,
        }
        return {slot: image for slot, image in slots.items() if image is not None}


class QueuedContribution(BaseModel):
    id: str
    timestamp: int  # epoch milliseconds at capture
    form_data: QueuedFormData
    images: QueuedImages
    status: QueueStatus = "pending"
    retry_count: int = 0
    error: str | None = None


class QueueStats(BaseModel):
    total: int = 0
    pending: int = 0
    uploading: int = 0
    failed: int = 0
    completed: int = 0
    oldest_timestamp: int | None = None


class SyncStats(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    current: str | None = None
