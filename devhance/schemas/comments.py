"""Comment Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from devhance.db.models.project_comment import MAX_COMMENT_LENGTH
from devhance.schemas.common import AuthorSummary


class CommentPayload(BaseModel):
    """Body of comment create and update requests."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    text: str = Field(..., min_length=1, max_length=MAX_COMMENT_LENGTH)


class CommentResponse(BaseModel):
    id: str
    project_id: str
    user_id: str
    text: str
    created_at: datetime
    updated_at: datetime
    user: AuthorSummary
