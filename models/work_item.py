from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Index, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base


class WorkItem(Base):
    """
    One unit of collectable content (a prompt) within a scope.

    Scopes:
    - Queue scopes ("industry=Fintech|country=US") own the visibility
      prompts rendered from templates; entity_id is NULL
    - Entity scopes ("entity:42") own the prompts confirmed for one
      employer during onboarding
    """
    __tablename__ = "work_items"

    id = Column(Integer, primary_key=True, autoincrement=True)

    scope_key = Column(String(255), nullable=False, index=True)
    entity_id = Column(Integer, ForeignKey("entities.id"), nullable=True, index=True)

    prompt_text = Column(Text, nullable=False)
    prompt_type = Column(String(50), nullable=False, default="sentiment")
    category = Column(String(100), nullable=True)
    theme = Column(String(100), nullable=True)

    industry_context = Column(String(200), nullable=True)
    location_context = Column(String(50), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    entity = relationship("Entity", back_populates="work_items")
    responses = relationship("ResponseRecord", back_populates="work_item")

    __table_args__ = (
        Index("idx_work_item_scope_prompt", "scope_key", "prompt_text", unique=True),
    )

    @property
    def label(self) -> str:
        """Short label for progress displays"""
        if self.theme:
            return self.theme
        text = self.prompt_text or ""
        return text[:80] + ("…" if len(text) > 80 else "")
