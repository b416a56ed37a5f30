from enum import Enum

from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel


class Destination(str, Enum):
    CHAT = "CHAT"  # originating chat platform's report channel
    SHEETS = "SHEETS"
    NOTION = "NOTION"
    CSV = "CSV"


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    RETRYING = "RETRYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


DUE_STATUSES = (DeliveryStatus.PENDING.value, DeliveryStatus.RETRYING.value)
RESENDABLE_STATUSES = (DeliveryStatus.FAILED.value, DeliveryStatus.RETRYING.value)


class DeliveryJob(BaseModel):
    __tablename__ = "delivery_jobs"
    __table_args__ = (
        UniqueConstraint("run_id", "destination", name="uq_delivery_run_destination"),
    )

    run_id = Column(Integer, ForeignKey("standup_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    destination = Column(String, nullable=False)
    status = Column(String, default=DeliveryStatus.PENDING.value, nullable=False, index=True)

    attempt_count = Column(Integer, default=0, nullable=False)
    next_attempt_at = Column(DateTime, nullable=False, index=True)
    last_error = Column(Text, nullable=True)  # stored in full
    completed_at = Column(DateTime, nullable=True)
    destination_url = Column(Text, nullable=True)  # link or file path reported by the publisher

    run = relationship("StandupRun", back_populates="delivery_jobs")
