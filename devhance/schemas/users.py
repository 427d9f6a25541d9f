"""User Pydantic schemas — profile form, identity sync and responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devhance.schemas.common import optional_url

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"

# Static segments under /api/users that would shadow a public profile
RESERVED_USERNAMES = frozenset({"profile", "sync"})


def is_reserved_username(username: str) -> bool:
    return username.lower() in RESERVED_USERNAMES


class ProfilePayload(BaseModel):
    """Profile-completion form. ``displayName`` and ``username`` are mandatory."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    display_name: str = Field(..., alias="displayName", min_length=1, max_length=50)
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    headline: str | None = Field(None, max_length=255)
    location: str | None = Field(None, max_length=255)
    bio: str | None = Field(None, max_length=2000)
    github_url: str | None = Field(None, alias="githubUrl", max_length=500)
    linkedin_url: str | None = Field(None, alias="linkedinUrl", max_length=500)
    website_url: str | None = Field(None, alias="websiteUrl", max_length=500)

    @field_validator("github_url", "linkedin_url", "website_url", mode="before")
    @classmethod
    def blank_url_is_none(cls, v: object) -> object:
        return optional_url(v)

    @field_validator("username")
    @classmethod
    def username_not_reserved(cls, v: str) -> str:
        if is_reserved_username(v):
            raise ValueError("This username is reserved")
        return v


class ClerkEmailAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email_address: str = Field(..., alias="emailAddress")


class SyncUserData(BaseModel):
    """Subset of the Clerk frontend user object mirrored into the users table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    username: str | None = None
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    email_addresses: list[ClerkEmailAddress] = Field(default_factory=list, alias="emailAddresses")
    image_url: str | None = Field(None, alias="imageUrl")

    @property
    def primary_email(self) -> str | None:
        return self.email_addresses[0].email_address if self.email_addresses else None


class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    user_data: SyncUserData = Field(..., alias="userData")


class PublicUserResponse(BaseModel):
    """Fields visible to anyone on a public profile page."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    display_name: str
    headline: str | None = None
    location: str | None = None
    profile_picture: str | None = None
    bio: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    website_url: str | None = None
    created_at: datetime


class UserResponse(PublicUserResponse):
    """The requester's own row, including private fields."""

    email: str | None = None
    is_profile_complete: bool
    updated_at: datetime
