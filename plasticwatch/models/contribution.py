from sqlalchemy import CheckConstraint, Column, Float, Index, String

from plasticwatch.database import Base
from plasticwatch.utils.timestamps import utc_now_iso

CONTRIBUTION_STATUSES = ("pending", "classified", "rejected")


class Contribution(Base):
    __tablename__ = "contributions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'classified', 'rejected')",
            name="ck_contributions_status",
        ),
        Index("idx_contributions_user", "user_id"),
        Index("idx_contributions_status", "status"),
        Index("idx_contributions_created", "created_at"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(String, nullable=False, default=utc_now_iso)
    updated_at = Column(String, nullable=False, default=utc_now_iso, onupdate=utc_now_iso)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    beach_name = Column(String, nullable=True)
    beach_latitude = Column(Float, nullable=True)
    beach_longitude = Column(Float, nullable=True)

    # Submitter's guesses; verified values live in classifications
    brand_suggestion = Column(String, nullable=True)
    plastic_type_suggestion = Column(String, nullable=True)
    product_type_suggestion = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    product_image_url = Column(String, nullable=False)
    backside_image_url = Column(String, nullable=True)
    recycling_image_url = Column(String, nullable=True)
    manufacturer_image_url = Column(String, nullable=True)
