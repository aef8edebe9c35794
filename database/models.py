"""
SQLAlchemy models for the item bank

BankItem   one authored or AI-generated item (all item types share the table;
           type-specific fields are nullable)
ItemUsage  one appearance of an item on an assembled test
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BankItem(Base):
    __tablename__ = "bank_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    text = Column(Text, nullable=False)
    item_type = Column(String(20), nullable=False, index=True)    # mcq | true_false | short_answer | essay
    topic = Column(String(255), nullable=False, index=True)
    cognitive_level = Column(String(20), nullable=False, index=True)
    difficulty = Column(String(20), nullable=False, index=True)

    # Type-specific answer data
    choices = Column(JSON(none_as_null=True), nullable=True)              # {"A": "...", ...}
    correct_answer = Column(Text, nullable=True)       # label, or "True"/"False"
    explanation = Column(Text, nullable=True)
    model_answer = Column(Text, nullable=True)
    accepted_answers = Column(JSON(none_as_null=True), nullable=True)
    rubric_points = Column(JSON(none_as_null=True), nullable=True)

    embedding_vector = Column(JSON(none_as_null=True), nullable=True)
    quality_score = Column(Float, default=0.7, nullable=False)
    approved = Column(Boolean, default=False, nullable=False, index=True)
    created_by = Column(String(10), default="human", nullable=False)   # human | ai
    concept = Column(String(255), nullable=True)
    operation = Column(String(64), nullable=True)
    answer_type = Column(String(32), nullable=True)

    usage_count = Column(Integer, default=0, nullable=False, index=True)
    deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    usages = relationship(
        "ItemUsage",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ItemUsage.used_at",
    )

    def __repr__(self):
        return f"<BankItem(id={self.id}, type={self.item_type}, topic='{self.topic}', level={self.cognitive_level})>"


class ItemUsage(Base):
    __tablename__ = "item_usages"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(String(36), ForeignKey("bank_items.id", ondelete="CASCADE"), nullable=False, index=True)
    test_id = Column(String(64), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    item = relationship("BankItem", back_populates="usages")
