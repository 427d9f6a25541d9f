"""Clerk webhook handling — mirrors user.* events into the users table.

Clerk signs deliveries with Svix. The raw body and the svix-* headers are
verified before anything is parsed; an unsigned or tampered delivery is a 400.
"""

import re
from datetime import UTC, datetime

import structlog
from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from svix.webhooks import Webhook, WebhookVerificationError

from devhance.core.auth import forget_provisioned_user
from devhance.core.config import get_settings
from devhance.core.provisioning import available_username, username_candidate
from devhance.db.base import insert_ignoring_conflicts
from devhance.db.models.user import User
from devhance.schemas.common import validate_payload
from devhance.schemas.users import USERNAME_PATTERN, is_reserved_username
from devhance.schemas.webhooks import ClerkUserEventData, ClerkWebhookEvent
from devhance.services.storage import storage_errors

logger = structlog.get_logger(__name__)

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


def _usable_username(username: str | None) -> bool:
    return (
        bool(username)
        and 3 <= len(username) <= 30
        and re.fullmatch(USERNAME_PATTERN, username) is not None
        and not is_reserved_username(username)
    )


def verify_clerk_webhook(body: bytes, headers: dict[str, str]) -> dict:
    """Verify the Svix signature and return the decoded event.

    Raises:
        HTTPException(503): webhook secret not configured
        HTTPException(400): missing headers or bad signature
    """
    settings = get_settings()
    if not settings.clerk_webhook_secret:
        logger.error("clerk_webhook_unconfigured")
        raise HTTPException(status_code=503, detail="Webhook secret not configured")

    svix_headers = {name: headers.get(name) for name in SVIX_HEADERS}
    if not all(svix_headers.values()):
        raise HTTPException(status_code=400, detail="Missing Svix headers")

    try:
        return Webhook(settings.clerk_webhook_secret).verify(body, svix_headers)
    except WebhookVerificationError:
        logger.warning("clerk_webhook_signature_invalid", svix_id=svix_headers["svix-id"])
        raise HTTPException(status_code=400, detail="Invalid webhook signature")


class ClerkWebhookService:
    """Applies verified Clerk user events.

    user.created -> insert (no-op if lazy provisioning got there first)
    user.updated -> refresh email, picture, display name; adopt a free username
    user.deleted -> delete the row; projects, likes and comments cascade
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def handle(self, payload: dict) -> dict:
        event = validate_payload(ClerkWebhookEvent, payload)

        handlers = {
            "user.created": self._user_created,
            "user.updated": self._user_updated,
            "user.deleted": self._user_deleted,
        }
        handler = handlers.get(event.type)
        if handler is None:
            logger.info("clerk_webhook_ignored", event_type=event.type)
            return {"success": True}

        data = validate_payload(ClerkUserEventData, event.data)
        await handler(data)
        logger.info("clerk_webhook_processed", event_type=event.type, user_id=data.id)
        return {"success": True}

    async def _user_created(self, data: ClerkUserEventData) -> None:
        async with self.session_factory() as session:
            async with storage_errors(session, "webhook_user_created", user_id=data.id):
                username = await available_username(
                    session, username_candidate(data.username, data.primary_email), data.id
                )
                await session.execute(
                    insert_ignoring_conflicts(
                        session,
                        User,
                        ["id"],
                        id=data.id,
                        username=username,
                        display_name=data.display_name,
                        email=data.primary_email,
                        profile_picture=data.image_url,
                        is_profile_complete=False,
                    )
                )
                await session.commit()

    async def _user_updated(self, data: ClerkUserEventData) -> None:
        async with self.session_factory() as session:
            async with storage_errors(session, "webhook_user_updated", user_id=data.id):
                user = await session.get(User, data.id)
                if user is not None:
                    if data.primary_email:
                        user.email = data.primary_email
                    if data.image_url:
                        user.profile_picture = data.image_url
                    if not user.is_profile_complete and (data.first_name or data.last_name):
                        user.display_name = data.display_name
                    if _usable_username(data.username) and data.username != user.username:
                        if await available_username(session, data.username, data.id) == data.username:
                            user.username = data.username
                    user.updated_at = datetime.now(UTC)
                    await session.commit()
                    return

        # Update delivered before create (or create was missed)
        await self._user_created(data)

    async def _user_deleted(self, data: ClerkUserEventData) -> None:
        async with self.session_factory() as session:
            async with storage_errors(session, "webhook_user_deleted", user_id=data.id):
                await session.execute(delete(User).where(User.id == data.id))
                await session.commit()
        forget_provisioned_user(data.id)
