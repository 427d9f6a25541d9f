"""Project Pydantic schemas — multipart form payloads and API responses."""

import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devhance.schemas.common import AuthorSummary, optional_url


def _parse_string_list(value: object) -> object:
    """Accept a JSON array string (multipart forms) or a list; dedupe in order."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise ValueError("must be a JSON array of strings")
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError("must be a JSON array of strings")

    seen: dict[str, None] = {}
    for item in value:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


class ProjectPayload(BaseModel):
    """Fields accepted by project create and update forms."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    story: str = Field(..., min_length=1, max_length=6000)
    tech_stack: list[str] = Field(default_factory=list, alias="techStack")
    tags: list[str] = Field(default_factory=list)
    github_url: str | None = Field(None, alias="githubUrl", max_length=500)
    live_url: str | None = Field(None, alias="liveUrl", max_length=500)
    figma_url: str | None = Field(None, alias="figmaUrl", max_length=500)
    youtube_url: str | None = Field(None, alias="youtubeUrl", max_length=500)
    is_public: bool = Field(True, alias="isPublic")

    @field_validator("tech_stack", "tags", mode="before")
    @classmethod
    def parse_string_list(cls, v: object) -> object:
        return _parse_string_list(v)

    @field_validator("github_url", "live_url", "figma_url", "youtube_url", mode="before")
    @classmethod
    def blank_url_is_none(cls, v: object) -> object:
        return optional_url(v)


class ProjectResponse(BaseModel):
    """Project as returned by every project endpoint."""

    id: str
    title: str
    description: str
    story: str
    thumbnail: str
    images: list[str]
    tech_stack: list[str]
    tags: list[str]
    github_url: str | None
    live_url: str | None
    figma_url: str | None
    youtube_url: str | None
    is_public: bool
    author: AuthorSummary
    like_count: int = Field(0, serialization_alias="likeCount")
    comment_count: int = Field(0, serialization_alias="commentCount")
    created_at: datetime
    updated_at: datetime


class LikeResponse(BaseModel):
    message: str
    liked: bool
    like_count: int = Field(..., serialization_alias="likeCount")
