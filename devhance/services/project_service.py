"""ProjectService — project CRUD, discover feed and likes.

Responsibilities:
- Feed and detail queries with embedded author summary and like/comment counts
- Ownership-checked update/delete (NotFound -> Forbidden -> apply)
- Image batches uploaded before any row is written, discarded if the write fails
- Reject-duplicate likes, enforced by the (project_id, user_id) primary key
"""

from datetime import UTC, datetime

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from devhance.core.exceptions import Conflict
from devhance.db.models.project import Project
from devhance.db.models.project_comment import ProjectComment
from devhance.db.models.project_like import ProjectLike
from devhance.db.models.user import User
from devhance.domain.ownership import ensure_owner, require_found
from devhance.schemas.common import AuthorSummary
from devhance.schemas.projects import LikeResponse, ProjectPayload, ProjectResponse
from devhance.services.media_service import PROJECT_FOLDER, ImagePayload, MediaService
from devhance.services.storage import storage_errors

logger = structlog.get_logger(__name__)


def _like_count():
    return (
        select(func.count())
        .select_from(ProjectLike)
        .where(ProjectLike.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


def _comment_count():
    return (
        select(func.count())
        .select_from(ProjectComment)
        .where(ProjectComment.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


def _project_select():
    """Project rows with author eagerly loaded plus like and comment counts."""
    return select(
        Project,
        _like_count().label("like_count"),
        _comment_count().label("comment_count"),
    ).options(joinedload(Project.author_user))


def to_response(project: Project, like_count: int = 0, comment_count: int = 0) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        title=project.title,
        description=project.description,
        story=project.story,
        thumbnail=project.thumbnail or "",
        images=list(project.images or []),
        tech_stack=list(project.tech_stack or []),
        tags=list(project.tags or []),
        github_url=project.github_url,
        live_url=project.live_url,
        figma_url=project.figma_url,
        youtube_url=project.youtube_url,
        is_public=project.is_public,
        author=AuthorSummary.model_validate(project.author_user),
        like_count=like_count or 0,
        comment_count=comment_count or 0,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


async def get_visible_project(
    session: AsyncSession,
    project_id: str,
    requester_id: str | None,
) -> Project:
    """Load a project the requester may see; private projects are visible to the author only.

    Raises:
        NotFound: missing, or private and not owned by the requester
    """
    project = await session.get(Project, project_id)
    if project is not None and not project.is_public and project.author != requester_id:
        project = None
    return require_found(project, "Project")


class ProjectService:
    """Service layer for projects and likes."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], media: MediaService):
        self.session_factory = session_factory
        self.media = media

    async def _load_response(self, session: AsyncSession, project_id: str) -> ProjectResponse:
        stmt = _project_select().where(Project.id == project_id).execution_options(populate_existing=True)
        row = (await session.execute(stmt)).one()
        return to_response(*row)

    async def list_public(self) -> list[ProjectResponse]:
        """Discover feed: public projects, newest first."""
        async with self.session_factory() as session:
            async with storage_errors(session, "list_public_projects"):
                result = await session.execute(
                    _project_select()
                    .where(Project.is_public.is_(True))
                    .order_by(Project.created_at.desc())
                )
                return [to_response(*row) for row in result.all()]

    async def list_for_author(self, user_id: str) -> list[ProjectResponse]:
        """All projects (public and private) owned by ``user_id``."""
        async with self.session_factory() as session:
            async with storage_errors(session, "list_author_projects", user_id=user_id):
                result = await session.execute(
                    _project_select()
                    .where(Project.author == user_id)
                    .order_by(Project.created_at.desc())
                )
                return [to_response(*row) for row in result.all()]

    async def list_public_by_username(self, username: str) -> list[ProjectResponse]:
        """Public projects of the user with ``username``.

        Raises:
            NotFound: no such user
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "list_user_projects", username=username):
                user_id = (
                    await session.execute(select(User.id).where(User.username == username))
                ).scalar_one_or_none()
                require_found(user_id, "User")

                result = await session.execute(
                    _project_select()
                    .where(Project.author == user_id, Project.is_public.is_(True))
                    .order_by(Project.created_at.desc())
                )
                return [to_response(*row) for row in result.all()]

    async def get(self, project_id: str, requester_id: str | None = None) -> ProjectResponse:
        async with self.session_factory() as session:
            async with storage_errors(session, "get_project", project_id=project_id):
                await get_visible_project(session, project_id, requester_id)
                return await self._load_response(session, project_id)

    async def create(
        self,
        user_id: str,
        payload: ProjectPayload,
        images: list[ImagePayload],
    ) -> ProjectResponse:
        """Upload images, then insert the project. The first image is the thumbnail.

        Uploaded images are discarded again when the insert fails.
        """
        image_urls = await self.media.upload_batch(images, PROJECT_FOLDER)

        async with self.session_factory() as session:
            async with storage_errors(session, "create_project", user_id=user_id):
                project = Project(
                    author=user_id,
                    title=payload.title,
                    description=payload.description,
                    story=payload.story,
                    thumbnail=image_urls[0] if image_urls else "",
                    images=image_urls,
                    tech_stack=payload.tech_stack,
                    tags=payload.tags,
                    github_url=payload.github_url,
                    live_url=payload.live_url,
                    figma_url=payload.figma_url,
                    youtube_url=payload.youtube_url,
                    is_public=payload.is_public,
                )
                session.add(project)
                try:
                    await session.commit()
                except SQLAlchemyError:
                    await self.media.discard_urls(image_urls)
                    raise

                logger.info("project_created", project_id=project.id, user_id=user_id, images=len(image_urls))
                return await self._load_response(session, project.id)

    async def update(
        self,
        project_id: str,
        user_id: str,
        payload: ProjectPayload,
        images: list[ImagePayload],
    ) -> ProjectResponse:
        """Replace the project's fields; a new image batch replaces images and thumbnail.

        Raises:
            NotFound: project does not exist
            Forbidden: requester is not the author
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "update_project", project_id=project_id):
                project = require_found(await session.get(Project, project_id), "Project")
                ensure_owner(project.author, user_id, "update your own projects")

                image_urls = await self.media.upload_batch(images, PROJECT_FOLDER)

                project.title = payload.title
                project.description = payload.description
                project.story = payload.story
                project.tech_stack = payload.tech_stack
                project.tags = payload.tags
                project.github_url = payload.github_url
                project.live_url = payload.live_url
                project.figma_url = payload.figma_url
                project.youtube_url = payload.youtube_url
                project.is_public = payload.is_public
                if image_urls:
                    project.images = image_urls
                    project.thumbnail = image_urls[0]
                project.updated_at = datetime.now(UTC)
                try:
                    await session.commit()
                except SQLAlchemyError:
                    await self.media.discard_urls(image_urls)
                    raise

                logger.info("project_updated", project_id=project_id, user_id=user_id)
                return await self._load_response(session, project_id)

    async def delete(self, project_id: str, user_id: str) -> None:
        """Delete a project; likes and comments go with it (ON DELETE CASCADE).

        Raises:
            NotFound: project does not exist
            Forbidden: requester is not the author
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "delete_project", project_id=project_id):
                project = require_found(await session.get(Project, project_id), "Project")
                ensure_owner(project.author, user_id, "delete your own projects")

                await session.execute(delete(Project).where(Project.id == project_id))
                await session.commit()

                logger.info("project_deleted", project_id=project_id, user_id=user_id)

    # ── Likes ───────────────────────────────────────────────────────

    async def _count_likes(self, session: AsyncSession, project_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(ProjectLike).where(ProjectLike.project_id == project_id)
        )
        return result.scalar() or 0

    async def _already_liked(self, session: AsyncSession, project_id: str, user_id: str) -> bool:
        return await session.get(ProjectLike, (project_id, user_id)) is not None

    async def like(self, project_id: str, user_id: str) -> LikeResponse:
        """Like a project once.

        Raises:
            NotFound: project missing or not visible
            Conflict: the user already likes this project
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "like_project", project_id=project_id):
                await get_visible_project(session, project_id, user_id)

                if await self._already_liked(session, project_id, user_id):
                    raise Conflict("Project already liked")

                session.add(ProjectLike(project_id=project_id, user_id=user_id))
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent like won the primary key
                    await session.rollback()
                    raise Conflict("Project already liked")

                logger.info("project_liked", project_id=project_id, user_id=user_id)
                return LikeResponse(
                    message="Project liked successfully",
                    liked=True,
                    like_count=await self._count_likes(session, project_id),
                )

    async def unlike(self, project_id: str, user_id: str) -> LikeResponse:
        """Remove the requester's like.

        Raises:
            NotFound: project missing, or the user has not liked it
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "unlike_project", project_id=project_id):
                await get_visible_project(session, project_id, user_id)

                result = await session.execute(
                    delete(ProjectLike).where(
                        ProjectLike.project_id == project_id,
                        ProjectLike.user_id == user_id,
                    )
                )
                if not result.rowcount:
                    await session.rollback()
                    require_found(None, "Like")
                await session.commit()

                logger.info("project_unliked", project_id=project_id, user_id=user_id)
                return LikeResponse(
                    message="Project unliked successfully",
                    liked=False,
                    like_count=await self._count_likes(session, project_id),
                )
