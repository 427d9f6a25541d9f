"""UserService — profile completion, identity sync and public profile lookup.

Username rules:
- A requested username is pre-checked against other rows -> Conflict
- The users.username unique constraint stays authoritative; IntegrityError -> Conflict
- Automatically derived usernames (sync) fall back to a random one when taken
- Sync never overwrites an existing username and never resets is_profile_complete
"""

from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devhance.core.exceptions import Conflict, NotFound
from devhance.core.provisioning import available_username, username_candidate
from devhance.db.models.user import User
from devhance.domain.ownership import require_found
from devhance.schemas.users import ProfilePayload, PublicUserResponse, SyncUserData, UserResponse
from devhance.services.media_service import PROFILE_FOLDER, ImagePayload, MediaService
from devhance.services.storage import storage_errors

logger = structlog.get_logger(__name__)

USERNAME_TAKEN = "Username is already taken"


class UserService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], media: MediaService | None = None):
        self.session_factory = session_factory
        self.media = media

    async def get_profile(self, user_id: str) -> UserResponse:
        """The requester's own row.

        Raises:
            NotFound: no row yet (client treats this as an incomplete profile)
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "get_profile", user_id=user_id):
                user = await session.get(User, user_id)
                if user is None:
                    raise NotFound("User profile not found. Please complete setup.")
                return UserResponse.model_validate(user)

    async def get_public(self, username: str) -> PublicUserResponse:
        async with self.session_factory() as session:
            async with storage_errors(session, "get_public_profile", username=username):
                result = await session.execute(select(User).where(User.username == username))
                user = require_found(result.scalar_one_or_none(), "User")
                return PublicUserResponse.model_validate(user)

    async def _username_taken(self, session: AsyncSession, username: str, user_id: str) -> bool:
        result = await session.execute(
            select(User.id).where(User.username == username, User.id != user_id)
        )
        return result.scalar_one_or_none() is not None

    async def _discard_picture(self, url: str | None) -> None:
        if url:
            await self.media.discard_urls([url])

    async def save_profile(
        self,
        user_id: str,
        payload: ProfilePayload,
        image: ImagePayload | None = None,
        email: str | None = None,
    ) -> UserResponse:
        """Create or update the requester's row and mark the profile complete.

        A new picture is removed from the media host again if the row is not written.

        Raises:
            Conflict: username held by another user
            ValidationError: image payload rejected
            MediaUploadError: image upload failed (row untouched)
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "save_profile", user_id=user_id):
                if await self._username_taken(session, payload.username, user_id):
                    raise Conflict(USERNAME_TAKEN, field="username")

                picture_url = None
                if image is not None:
                    urls = await self.media.upload_batch([image], PROFILE_FOLDER, field="image")
                    picture_url = urls[0]

                user = await session.get(User, user_id)
                if user is None:
                    user = User(id=user_id, email=email)
                    session.add(user)

                user.username = payload.username
                user.display_name = payload.display_name
                user.headline = payload.headline
                user.location = payload.location
                user.bio = payload.bio
                user.github_url = payload.github_url
                user.linkedin_url = payload.linkedin_url
                user.website_url = payload.website_url
                if picture_url:
                    user.profile_picture = picture_url
                user.is_profile_complete = True
                user.updated_at = datetime.now(UTC)

                try:
                    await session.commit()
                except IntegrityError:
                    # Another user claimed the username between the check and the write
                    await session.rollback()
                    await self._discard_picture(picture_url)
                    raise Conflict(USERNAME_TAKEN, field="username")
                except SQLAlchemyError:
                    await self._discard_picture(picture_url)
                    raise

                await session.refresh(user)
                logger.info("profile_saved", user_id=user_id, username=user.username)
                return UserResponse.model_validate(user)

    async def sync(self, user_id: str, data: SyncUserData) -> UserResponse:
        """Mirror identity-provider fields into the users table.

        New rows start incomplete with a derived username. Existing rows get
        email and picture refreshed; username, display name and the completion
        flag stay as the user set them.
        """
        async with self.session_factory() as session:
            async with storage_errors(session, "sync_user", user_id=user_id):
                user = await session.get(User, user_id)
                email = data.primary_email

                if user is None:
                    full_name = " ".join(p for p in (data.first_name, data.last_name) if p)
                    username = await available_username(
                        session, username_candidate(data.username, email), user_id
                    )
                    user = User(
                        id=user_id,
                        username=username,
                        display_name=(full_name or "User")[:50],
                        email=email,
                        profile_picture=data.image_url,
                        is_profile_complete=False,
                    )
                    session.add(user)
                    created = True
                else:
                    if email:
                        user.email = email
                    if data.image_url and not user.profile_picture:
                        user.profile_picture = data.image_url
                    user.updated_at = datetime.now(UTC)
                    created = False

                try:
                    await session.commit()
                except IntegrityError:
                    # Lost a race with the webhook or lazy provisioning; keep the winner's row
                    await session.rollback()
                    user = require_found(await session.get(User, user_id), "User")
                    created = False

                await session.refresh(user)
                logger.info("user_synced", user_id=user_id, created=created)
                return UserResponse.model_validate(user)
