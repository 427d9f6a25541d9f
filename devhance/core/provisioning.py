"""User provisioning on first authenticated request.

The ``user.created`` webhook and this lazy path can race to insert the same id.
The primary key decides: the losing insert is an ON CONFLICT DO NOTHING no-op.
A derived username claimed concurrently by another subject is replaced with a
random one and the insert retried once.
"""

import re
import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.db.base import get_session_factory, insert_ignoring_conflicts
from devhance.db.models.user import User
from devhance.domain.ownership import require_found
from devhance.schemas.users import is_reserved_username
from devhance.services.storage import storage_errors

logger = structlog.get_logger(__name__)

_USERNAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def random_username() -> str:
    return f"user_{uuid.uuid4().hex[:12]}"


def username_candidate(preferred: str | None, email: str | None) -> str:
    """Derive a valid username from an identity-provider username or email.

    Falls back to a random ``user_<hex>`` when nothing usable is available.
    """
    for raw in (preferred, (email or "").split("@")[0]):
        if not raw:
            continue
        cleaned = _USERNAME_UNSAFE.sub("", raw)[:30]
        if len(cleaned) >= 3 and not is_reserved_username(cleaned):
            return cleaned
    return random_username()


async def available_username(session: AsyncSession, candidate: str, user_id: str) -> str:
    """Return ``candidate`` if no other user holds it, else a random username."""
    result = await session.execute(
        select(User.id).where(User.username == candidate, User.id != user_id)
    )
    if result.scalar_one_or_none() is None:
        return candidate
    return random_username()


def display_name_from_claims(claims: dict) -> str:
    first = claims.get("first_name") or ""
    last = claims.get("last_name") or ""
    full = f"{first} {last}".strip()
    return (claims.get("name") or full or claims.get("email") or "User")[:50]


async def provision_user_on_first_login(
    clerk_user_id: str,
    jwt_claims: dict,
    session: AsyncSession | None = None,
) -> User:
    """Ensure a users row exists for an authenticated subject.

    Idempotent: repeat calls for the same id return the existing row untouched.
    New rows start with ``is_profile_complete = False``.

    Args:
        clerk_user_id: Clerk user ID from JWT
        jwt_claims: JWT claims dict containing email, name, username, image_url
        session: Optional AsyncSession for testing (if None, creates new session)
    """
    if session is not None:
        return await _do_provision(clerk_user_id, jwt_claims, session)

    factory = get_session_factory()
    async with factory() as session:
        return await _do_provision(clerk_user_id, jwt_claims, session)


async def _do_provision(clerk_user_id: str, jwt_claims: dict, session: AsyncSession) -> User:
    async with storage_errors(session, "provision_user", user_id=clerk_user_id):
        existing = await session.get(User, clerk_user_id)
        if existing is not None:
            return existing

        username = await available_username(
            session,
            username_candidate(jwt_claims.get("username"), jwt_claims.get("email")),
            clerk_user_id,
        )
        try:
            inserted = await _insert_user(session, clerk_user_id, jwt_claims, username)
        except IntegrityError:
            # The derived username was claimed after the availability check
            await session.rollback()
            logger.warning("user_provision_username_race", user_id=clerk_user_id, username=username)
            inserted = await _insert_user(session, clerk_user_id, jwt_claims, random_username())

        if inserted:
            logger.info("user_provisioned", user_id=clerk_user_id, source="first_login")

        user = await session.get(User, clerk_user_id, populate_existing=True)
        return require_found(user, "User")


async def _insert_user(session: AsyncSession, clerk_user_id: str, jwt_claims: dict, username: str) -> bool:
    """Insert the row unless the id already exists; returns whether a row was written."""
    stmt = insert_ignoring_conflicts(
        session,
        User,
        ["id"],
        id=clerk_user_id,
        username=username,
        display_name=display_name_from_claims(jwt_claims),
        email=jwt_claims.get("email"),
        profile_picture=jwt_claims.get("image_url"),
        is_profile_complete=False,
    )
    result = await session.execute(stmt)
    await session.commit()
    return bool(result.rowcount)
