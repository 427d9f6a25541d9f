"""User API routes — profile completion, identity sync and public profiles.

/profile and /sync are declared before /{username}.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile

from devhance.api.routes.projects import get_project_service, read_images
from devhance.core.auth import ClerkUser, require_auth
from devhance.db.base import get_session_factory
from devhance.schemas.common import validate_payload
from devhance.schemas.projects import ProjectResponse
from devhance.schemas.users import ProfilePayload, PublicUserResponse, SyncRequest, UserResponse
from devhance.services.media_service import MediaService, get_media_service
from devhance.services.project_service import ProjectService
from devhance.services.user_service import UserService

router = APIRouter()


def get_user_service(media: MediaService = Depends(get_media_service)) -> UserService:
    return UserService(get_session_factory(), media)


def profile_form(
    display_name: str | None = Form(None, alias="displayName"),
    username: str | None = Form(None),
    headline: str | None = Form(None),
    location: str | None = Form(None),
    bio: str | None = Form(None),
    github_url: str | None = Form(None, alias="githubUrl"),
    linkedin_url: str | None = Form(None, alias="linkedinUrl"),
    website_url: str | None = Form(None, alias="websiteUrl"),
) -> ProfilePayload:
    raw = {
        "displayName": display_name,
        "username": username,
        "headline": headline,
        "location": location,
        "bio": bio,
        "githubUrl": github_url,
        "linkedinUrl": linkedin_url,
        "websiteUrl": website_url,
    }
    return validate_payload(ProfilePayload, {k: v for k, v in raw.items() if v is not None})


@router.get("/profile", response_model=UserResponse)
async def get_profile(
    user: ClerkUser = Depends(require_auth),
    service: UserService = Depends(get_user_service),
):
    """The requester's own row; 404 tells the client the profile is not set up."""
    return await service.get_profile(user.user_id)


@router.post("/profile", response_model=UserResponse)
async def save_profile(
    user: ClerkUser = Depends(require_auth),
    payload: ProfilePayload = Depends(profile_form),
    image: UploadFile | None = File(None),
    service: UserService = Depends(get_user_service),
):
    """Complete or edit the profile.

    Raises:
        Conflict(409): username taken by another user
        ValidationError(400): missing displayName/username or bad image
    """
    images = await read_images([image] if image else [], "image", 1)
    return await service.save_profile(
        user.user_id,
        payload,
        image=images[0] if images else None,
        email=user.email,
    )


@router.post("/sync", response_model=UserResponse)
async def sync_user(
    body: SyncRequest,
    user: ClerkUser = Depends(require_auth),
    service: UserService = Depends(get_user_service),
):
    return await service.sync(user.user_id, body.user_data)


@router.get("/{username}", response_model=PublicUserResponse)
async def get_public_profile(
    username: str,
    service: UserService = Depends(get_user_service),
):
    return await service.get_public(username)


@router.get("/{username}/projects", response_model=list[ProjectResponse], response_model_by_alias=True)
async def get_user_projects(
    username: str,
    service: ProjectService = Depends(get_project_service),
):
    return await service.list_public_by_username(username)
