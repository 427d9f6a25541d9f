"""Re-export all models so Base.metadata sees them."""

from devhance.db.models.project import Project
from devhance.db.models.project_comment import ProjectComment
from devhance.db.models.project_like import ProjectLike
from devhance.db.models.user import User

__all__ = [
    "Project",
    "ProjectComment",
    "ProjectLike",
    "User",
]
