from sqlalchemy import Column, Integer, String, Enum, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, JSONType, EntityCollectionState, SubscriptionTier


class Entity(Base):
    """
    An employer whose AI-model perception is collected.

    Collection status columns back the resumable onboarding session:
    - collection_status NULL means no session was ever started (or an
      old entity predating sessions)
    - collection_progress holds the last CollectionProgress written by
      the session driver; it is cleared on completion
    """
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)
    industry = Column(String(200), nullable=True)

    subscription_tier = Column(Enum(SubscriptionTier), default=SubscriptionTier.FREE, nullable=False)

    # Collection session state
    collection_status = Column(Enum(EntityCollectionState), nullable=True, index=True)
    collection_progress = Column(JSONType, nullable=True)
    collection_started_at = Column(DateTime, nullable=True)
    collection_completed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_updated = Column(DateTime, nullable=True)

    # Relationships
    work_items = relationship("WorkItem", back_populates="entity")
