"""Project model — a portfolio case study owned by one user."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from devhance.db.base import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    author = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    story = Column(Text, nullable=False)

    thumbnail = Column(String(500), nullable=False, default="")
    images = Column(JSON, nullable=False, default=list)
    tech_stack = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)

    github_url = Column(String(500), nullable=True)
    live_url = Column(String(500), nullable=True)
    figma_url = Column(String(500), nullable=True)
    youtube_url = Column(String(500), nullable=True)

    is_public = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    author_user = relationship("User", lazy="raise")


Index("ix_projects_public_created_at", Project.is_public, Project.created_at.desc())
