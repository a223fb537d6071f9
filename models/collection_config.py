from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, JSONType


class CollectionConfiguration(Base):
    """
    Recurring collection schedule owned by a user.

    Purpose:
    - Define when (day of month, hour of day, UTC) collection runs
    - Define what is collected: scope dimensions whose cross-product
      becomes one queue job per combination

    Design:
    - scope_dimensions maps dimension name to a list of values,
      e.g. {"industry": ["Fintech", "Retail"], "country": ["US", "GB"]}
    - last_run_at is only ever written by the schedule trigger
    """
    __tablename__ = "collection_configurations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(100), nullable=True, index=True)

    # Schedule (UTC)
    schedule_day = Column(Integer, nullable=False)
    schedule_hour = Column(Integer, nullable=False)

    # Scope
    scope_dimensions = Column(JSONType, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True)
    last_run_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    jobs = relationship("QueueJob", back_populates="configuration")

    __table_args__ = (
        Index("idx_config_schedule", "is_active", "schedule_day", "schedule_hour"),
    )
