"""User model — portfolio owner, keyed by the Clerk subject id."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, Text

from devhance.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    # Unique constraint is the authoritative guard; route pre-checks are UX only
    username = Column(String(30), unique=True, nullable=False, index=True)
    display_name = Column(String(50), nullable=False, default="User")
    email = Column(String(255), nullable=True)
    profile_picture = Column(String(500), nullable=True)

    headline = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    github_url = Column(String(500), nullable=True)
    linkedin_url = Column(String(500), nullable=True)
    website_url = Column(String(500), nullable=True)

    is_profile_complete = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
