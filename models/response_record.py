from sqlalchemy import Column, Integer, String, DateTime, Text, Index, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, JSONType


class ResponseRecord(Base):
    """
    One collected provider response per (work item, provider).

    Design:
    - Unique on (work_item_id, provider_key); rows are written only
      through an upsert, never a blind insert
    - attempt_count counts how many times the pair has been written, so
      a full refresh that overwrites a row is observable without
      duplicating it
    """
    __tablename__ = "response_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    work_item_id = Column(Integer, ForeignKey("work_items.id"), nullable=False, index=True)
    provider_key = Column(String(50), nullable=False, index=True)

    response_text = Column(Text, nullable=False)
    citations = Column(JSONType, nullable=True)
    metrics = Column(JSONType, nullable=True)

    attempt_count = Column(Integer, nullable=False, default=1)

    # Timestamps
    collected_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    work_item = relationship("WorkItem", back_populates="responses")

    __table_args__ = (
        Index("idx_response_item_provider", "work_item_id", "provider_key", unique=True),
    )
