"""CommentService — comments on a project, each with its author embedded."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from devhance.core.exceptions import ValidationError
from devhance.db.models.project import Project
from devhance.db.models.project_comment import ProjectComment
from devhance.domain.ownership import ensure_owner, require_found
from devhance.schemas.comments import CommentResponse
from devhance.schemas.common import AuthorSummary
from devhance.services.project_service import get_visible_project
from devhance.services.storage import storage_errors

logger = structlog.get_logger(__name__)


def to_response(comment: ProjectComment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        project_id=comment.project_id,
        user_id=comment.user_id,
        text=comment.text,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        user=AuthorSummary.model_validate(comment.user),
    )


class CommentService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _load(self, session: AsyncSession, comment_id: str) -> ProjectComment | None:
        result = await session.execute(
            select(ProjectComment)
            .options(joinedload(ProjectComment.user))
            .where(ProjectComment.id == comment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _owned_comment(
        self,
        session: AsyncSession,
        project_id: str,
        comment_id: str,
        user_id: str,
        action: str,
    ) -> ProjectComment:
        """Resolve a comment for mutation: NotFound, then Forbidden, then project match."""
        require_found(await session.get(Project, project_id), "Project")
        comment = require_found(await self._load(session, comment_id), "Comment")
        ensure_owner(comment.user_id, user_id, action)
        if comment.project_id != project_id:
            raise ValidationError.for_field("commentId", "Comment does not belong to this project")
        return comment

    async def list(self, project_id: str, requester_id: str | None = None) -> list[CommentResponse]:
        """Comments on a visible project, newest first.

        Raises:
            NotFound: project missing or not visible to the requester
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "list_comments", project_id=project_id):
                await get_visible_project(session, project_id, requester_id)
                result = await session.execute(
                    select(ProjectComment)
                    .options(joinedload(ProjectComment.user))
                    .where(ProjectComment.project_id == project_id)
                    .order_by(ProjectComment.created_at.desc())
                )
                return [to_response(c) for c in result.scalars().all()]

    async def add(self, project_id: str, user_id: str, text: str) -> CommentResponse:
        async with self.session_factory() as session:
            async with storage_errors(session, "add_comment", project_id=project_id):
                await get_visible_project(session, project_id, user_id)

                comment = ProjectComment(project_id=project_id, user_id=user_id, text=text)
                session.add(comment)
                await session.commit()

                logger.info("comment_added", comment_id=comment.id, project_id=project_id, user_id=user_id)
                return to_response(await self._load(session, comment.id))

    async def update(self, project_id: str, comment_id: str, user_id: str, text: str) -> CommentResponse:
        """Edit the requester's own comment.

        Raises:
            NotFound: project or comment missing
            Forbidden: requester did not write the comment
            ValidationError: comment belongs to a different project
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "update_comment", comment_id=comment_id):
                comment = await self._owned_comment(
                    session, project_id, comment_id, user_id, "update your own comments"
                )
                comment.text = text
                comment.updated_at = datetime.now(UTC)
                await session.commit()

                logger.info("comment_updated", comment_id=comment_id, user_id=user_id)
                return to_response(await self._load(session, comment_id))

    async def delete(self, project_id: str, comment_id: str, user_id: str) -> None:
        async with self.session_factory() as session:
            async with storage_errors(session, "delete_comment", comment_id=comment_id):
                comment = await self._owned_comment(
                    session, project_id, comment_id, user_id, "delete your own comments"
                )
                await session.delete(comment)
                await session.commit()

                logger.info("comment_deleted", comment_id=comment_id, user_id=user_id)
