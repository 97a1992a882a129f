from enum import Enum

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from shared.config.database import Base


class DonationStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class DonationType(str, Enum):
    GENERAL = "general"
    SEVA = "seva"
    EVENT = "event"
    FESTIVAL = "festival"
    CONSTRUCTION = "construction"
    ANNADANAM = "annadanam"
    EDUCATION = "education"
    MAINTENANCE = "maintenance"


# Placeholder method until the gateway reports the real one
METHOD_PENDING = "PENDING"
METHOD_UNKNOWN = "UNKNOWN"


class Donation(Base):
    __tablename__ = "donations"
    __table_args__ = {"schema": "donation_schema"}

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    entity_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    donation_type = Column(String(50), nullable=False)
    order_id = Column(String(100), unique=True, nullable=False, index=True)
    payment_id = Column(String(100), nullable=True)
    method = Column(String(50), nullable=False, default=METHOD_PENDING)
    status = Column(String(20), nullable=False, default=DonationStatus.PENDING.value)
    reference_id = Column(Integer, nullable=True)
    note = Column(Text, nullable=True)
    donated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
