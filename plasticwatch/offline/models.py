from sqlalchemy import JSON, BigInteger, Column, Integer, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase

IMAGE_SLOTS = ("product_image", "backside_image", "recycling_image", "manufacturer_image")


class QueueBase(DeclarativeBase):
    pass


class QueuedItem(QueueBase):
    """One captured submission; the row holds its form data and every image blob."""

    __tablename__ = "queued_contributions"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    local_id = Column(String, nullable=False, unique=True)
    timestamp = Column(BigInteger, nullable=False)
    form_data = Column(JSON, nullable=False)

    product_image = Column(LargeBinary, nullable=False)
    product_image_name = Column(String, nullable=False)
    backside_image = Column(LargeBinary, nullable=True)
    backside_image_name = Column(String, nullable=True)
    recycling_image = Column(LargeBinary, nullable=True)
    recycling_image_name = Column(String, nullable=True)
    manufacturer_image = Column(LargeBinary, nullable=True)
    manufacturer_image_name = Column(String, nullable=True)

    status = Column(String, nullable=False, default="pending")
    retry_count = Column(Integer, nullable=False, default=0)
    error = Column(String, nullable=True)
