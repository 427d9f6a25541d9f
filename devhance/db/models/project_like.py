"""ProjectLike model — one row per (project, user) pair."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String

from devhance.db.base import Base


class ProjectLike(Base):
    __tablename__ = "project_likes"

    # Composite primary key: at most one like per user per project
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
