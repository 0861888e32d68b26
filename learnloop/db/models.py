"""Database models for the tutoring engine.

This module defines SQLAlchemy ORM models for:
- Content and its ordered sections (read by the core, written elsewhere)
- Learning maps and their ordered concepts
- Learning sessions
- Interactions (append-only audit log of every AI exchange)
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


SESSION_STATUSES = ("ACTIVE", "PAUSED", "COMPLETED")
INTERACTION_ROLES = ("TUTOR", "EXAMINER", "COACH", "PLANNER", "REVIEWER")

USER_MESSAGE_MAX_CHARS = 10000
AI_RESPONSE_MAX_CHARS = 20000


class Content(Base):
    """An uploaded document, already split into sections."""
    __tablename__ = "contents"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    sections = relationship(
        "ContentSection",
        back_populates="content",
        cascade="all, delete-orphan",
        order_by="ContentSection.section_order",
    )


class ContentSection(Base):
    """One ordered section of extracted document text."""
    __tablename__ = "content_sections"

    id = Column(String(36), primary_key=True, default=_uuid)
    content_id = Column(String(36), ForeignKey("contents.id", ondelete="CASCADE"), nullable=False, index=True)
    section_order = Column(Integer, nullable=False)
    title = Column(String(500), nullable=False, default="")
    content_text = Column(Text, nullable=False, default="")

    # Relationships
    content = relationship("Content", back_populates="sections")


class LearningMap(Base):
    """AI-generated curriculum for one content item."""
    __tablename__ = "learning_maps"

    id = Column(String(36), primary_key=True, default=_uuid)
    content_id = Column(String(36), ForeignKey("contents.id", ondelete="CASCADE"), nullable=False, unique=True)
    overview = Column(Text, nullable=True)
    total_concepts = Column(Integer, default=0, nullable=False)
    estimated_duration = Column(Integer, default=0, nullable=False)  # minutes
    difficulty_level = Column(String(20), nullable=False, default="beginner")
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    concepts = relationship(
        "Concept",
        back_populates="learning_map",
        cascade="all, delete-orphan",
        order_by="Concept.concept_order",
    )


class Concept(Base):
    """Ordered curriculum node inside a learning map."""
    __tablename__ = "concepts"

    id = Column(String(36), primary_key=True, default=_uuid)
    learning_map_id = Column(String(36), ForeignKey("learning_maps.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    concept_order = Column(Integer, nullable=False)  # 1-based, dense
    difficulty = Column(Integer, default=1, nullable=False)  # 1-5
    estimated_minutes = Column(Integer, default=0, nullable=False)
    prerequisites = Column(JSON, nullable=True)  # titles, advisory only
    key_points = Column(JSON, nullable=True)

    # Relationships
    learning_map = relationship("LearningMap", back_populates="concepts")

    __table_args__ = (
        UniqueConstraint("learning_map_id", "concept_order", name="unique_concept_order"),
    )


class LearningSession(Base):
    """One user's run through one content's learning map."""
    __tablename__ = "learning_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    content_id = Column(String(36), ForeignKey("contents.id", ondelete="CASCADE"), nullable=False, index=True)
    current_concept_id = Column(String(36), ForeignKey("concepts.id", ondelete="SET NULL"), nullable=True)
    status = Column(Enum(*SESSION_STATUSES, name="session_status"), default="ACTIVE", nullable=False)
    state = Column(String(20), default="init", nullable=False)
    state_data = Column(JSON, nullable=True)
    progress = Column(Integer, default=0, nullable=False)  # 0-100
    total_time_minutes = Column(Integer, default=0, nullable=False)
    last_active_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    content = relationship("Content")
    current_concept = relationship("Concept")
    interactions = relationship(
        "Interaction",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Interaction.created_at",
    )

    __table_args__ = (
        Index("idx_session_user_content_status", "user_id", "content_id", "status"),
    )


class Interaction(Base):
    """One recorded exchange between the user and an AI role."""
    __tablename__ = "interactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(36), ForeignKey("learning_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    concept_id = Column(String(36), ForeignKey("concepts.id", ondelete="SET NULL"), nullable=True, index=True)
    role = Column(Enum(*INTERACTION_ROLES, name="interaction_role"), nullable=False)
    user_message = Column(Text, nullable=False, default="")
    ai_response = Column(Text, nullable=False, default="")
    interaction_type = Column(String(50), nullable=False)
    tokens_used = Column(Integer, default=0, nullable=False)
    confidence_score = Column(Float, nullable=True)  # 0.0 to 1.0
    prompt_version = Column(String(20), nullable=True)
    provider = Column(String(20), nullable=True)
    estimated_cost = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    session = relationship("LearningSession", back_populates="interactions")
    concept = relationship("Concept")
