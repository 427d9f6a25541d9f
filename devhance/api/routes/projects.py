"""Project API routes — discover feed, CRUD, likes and comments.

Static paths (/discover, /my-projects) are declared before /{project_id}.
"""

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from devhance.core.auth import ClerkUser, optional_auth, require_auth
from devhance.core.config import get_settings
from devhance.core.exceptions import ValidationError
from devhance.db.base import get_session_factory
from devhance.schemas.comments import CommentPayload, CommentResponse
from devhance.schemas.common import MessageResponse, validate_payload
from devhance.schemas.projects import LikeResponse, ProjectPayload, ProjectResponse
from devhance.services.comment_service import CommentService
from devhance.services.media_service import ImagePayload, MediaService, get_media_service
from devhance.services.project_service import ProjectService

router = APIRouter()


def get_project_service(media: MediaService = Depends(get_media_service)) -> ProjectService:
    return ProjectService(get_session_factory(), media)


def get_comment_service() -> CommentService:
    return CommentService(get_session_factory())


def project_form(
    title: str | None = Form(None),
    description: str | None = Form(None),
    story: str | None = Form(None),
    tech_stack: str | None = Form(None, alias="techStack"),
    tags: str | None = Form(None),
    github_url: str | None = Form(None, alias="githubUrl"),
    live_url: str | None = Form(None, alias="liveUrl"),
    figma_url: str | None = Form(None, alias="figmaUrl"),
    youtube_url: str | None = Form(None, alias="youtubeUrl"),
    is_public: str | None = Form(None, alias="isPublic"),
) -> ProjectPayload:
    """Collect multipart fields and validate them as one payload (400 on failure)."""
    raw = {
        "title": title,
        "description": description,
        "story": story,
        "techStack": tech_stack,
        "tags": tags,
        "githubUrl": github_url,
        "liveUrl": live_url,
        "figmaUrl": figma_url,
        "youtubeUrl": youtube_url,
        "isPublic": is_public,
    }
    return validate_payload(ProjectPayload, {k: v for k, v in raw.items() if v is not None})


async def read_images(uploads: list[UploadFile] | None, field: str, limit: int) -> list[ImagePayload]:
    """Read multipart files into memory, enforcing the per-request count."""
    uploads = [u for u in uploads or [] if u.filename]
    if len(uploads) > limit:
        raise ValidationError.for_field(field, f"At most {limit} images are allowed")
    return [
        ImagePayload(filename=u.filename, content=await u.read(), content_type=u.content_type)
        for u in uploads
    ]


@router.get("/discover", response_model=list[ProjectResponse], response_model_by_alias=True)
async def discover_projects(service: ProjectService = Depends(get_project_service)):
    """Public projects, newest first."""
    return await service.list_public()


@router.get("/my-projects", response_model=list[ProjectResponse], response_model_by_alias=True)
async def my_projects(
    user: ClerkUser = Depends(require_auth),
    service: ProjectService = Depends(get_project_service),
):
    return await service.list_for_author(user.user_id)


@router.post("", response_model=ProjectResponse, status_code=201, response_model_by_alias=True)
async def create_project(
    user: ClerkUser = Depends(require_auth),
    payload: ProjectPayload = Depends(project_form),
    images: list[UploadFile] | None = File(None),
    service: ProjectService = Depends(get_project_service),
):
    """Create a project; images are uploaded first and the first one becomes the thumbnail.

    Raises:
        HTTPException(401): missing or invalid token
        ValidationError(400): invalid fields or image payloads
        MediaUploadError(502): any image failed to upload (nothing stored)
    """
    image_payloads = await read_images(images, "images", get_settings().max_images_per_project)
    return await service.create(user.user_id, payload, image_payloads)


@router.get("/{project_id}", response_model=ProjectResponse, response_model_by_alias=True)
async def get_project(
    project_id: str,
    user: ClerkUser | None = Depends(optional_auth),
    service: ProjectService = Depends(get_project_service),
):
    return await service.get(project_id, user.user_id if user else None)


@router.put("/{project_id}", response_model=ProjectResponse, response_model_by_alias=True)
async def update_project(
    project_id: str,
    user: ClerkUser = Depends(require_auth),
    payload: ProjectPayload = Depends(project_form),
    images: list[UploadFile] | None = File(None),
    service: ProjectService = Depends(get_project_service),
):
    image_payloads = await read_images(images, "images", get_settings().max_images_per_project)
    return await service.update(project_id, user.user_id, payload, image_payloads)


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    project_id: str,
    user: ClerkUser = Depends(require_auth),
    service: ProjectService = Depends(get_project_service),
):
    await service.delete(project_id, user.user_id)
    return MessageResponse(message="Project deleted successfully")


# ── Likes ───────────────────────────────────────────────────────────


@router.post("/{project_id}/like", response_model=LikeResponse, response_model_by_alias=True)
async def like_project(
    project_id: str,
    user: ClerkUser = Depends(require_auth),
    service: ProjectService = Depends(get_project_service),
):
    return await service.like(project_id, user.user_id)


@router.delete("/{project_id}/like", response_model=LikeResponse, response_model_by_alias=True)
async def unlike_project(
    project_id: str,
    user: ClerkUser = Depends(require_auth),
    service: ProjectService = Depends(get_project_service),
):
    return await service.unlike(project_id, user.user_id)


# ── Comments ────────────────────────────────────────────────────────


@router.get("/{project_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    project_id: str,
    user: ClerkUser | None = Depends(optional_auth),
    service: CommentService = Depends(get_comment_service),
):
    return await service.list(project_id, user.user_id if user else None)


@router.post("/{project_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    project_id: str,
    body: CommentPayload,
    user: ClerkUser = Depends(require_auth),
    service: CommentService = Depends(get_comment_service),
):
    return await service.add(project_id, user.user_id, body.text)


@router.put("/{project_id}/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    project_id: str,
    comment_id: str,
    body: CommentPayload,
    user: ClerkUser = Depends(require_auth),
    service: CommentService = Depends(get_comment_service),
):
    return await service.update(project_id, comment_id, user.user_id, body.text)


@router.delete("/{project_id}/comments/{comment_id}", status_code=204)
async def delete_comment(
    project_id: str,
    comment_id: str,
    user: ClerkUser = Depends(require_auth),
    service: CommentService = Depends(get_comment_service),
):
    await service.delete(project_id, comment_id, user.user_id)
    return Response(status_code=204)
