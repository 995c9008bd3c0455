from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, Index, Integer, String

from plasticwatch.database import Base
from plasticwatch.utils.timestamps import utc_now_iso

CONFIDENCE_LEVELS = ("high", "medium", "low")


class Classification(Base):
    __tablename__ = "classifications"
    __table_args__ = (
        CheckConstraint(
            "confidence_level IN ('high', 'medium', 'low')",
            name="ck_classifications_confidence_level",
        ),
        Index("idx_classifications_admin", "classified_by"),
        Index("idx_classifications_date", "classified_at"),
        Index("idx_classifications_brand", "brand"),
    )

    id = Column(String, primary_key=True)
    contribution_id = Column(String, ForeignKey("contributions.id"), nullable=False, unique=True)

    brand = Column(String, nullable=False)
    manufacturer = Column(String, nullable=False)
    plastic_type = Column(String, nullable=True)
    product_type = Column(String, nullable=True)
    confidence_level = Column(String, nullable=False, default="medium")

    classified_by = Column(String, nullable=False)
    classified_at = Column(String, nullable=False, default=utc_now_iso)
    admin_notes = Column(String, nullable=True)

    beach_id = Column(Integer, nullable=True)
    company_id = Column(Integer, nullable=True)
    beach_latitude = Column(Float, nullable=True)
    beach_longitude = Column(Float, nullable=True)

    created_at = Column(String, nullable=False, default=utc_now_iso)
    updated_at = Column(String, nullable=False, default=utc_now_iso)
