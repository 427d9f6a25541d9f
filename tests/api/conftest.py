"""API-specific test fixtures."""

import os
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from devhance.core.auth import ClerkUser, optional_auth, require_auth
from devhance.core.exceptions import MediaUploadError
from devhance.db.base import Base, enable_sqlite_foreign_keys
from devhance.db.models import User
from devhance.services.media_service import MediaService, get_media_service


class FakeMediaService(MediaService):
    """Validates images like the real service but keeps "uploads" in memory."""

    def __init__(self):
        super().__init__(s3_client=MagicMock())
        self.uploaded: list[str] = []
        self.discarded: list[str] = []
        self.fail = False

    async def upload_batch(self, images, folder, field="images"):
        if not images:
            return []
        for image in images:
            self.validate(image, field)
        if self.fail:
            raise MediaUploadError()
        start = len(self.uploaded)
        urls = [f"https://cdn.test/{folder}/{start + i}.png" for i in range(len(images))]
        self.uploaded.extend(urls)
        return urls

    async def discard_urls(self, urls):
        self.discarded.extend(urls)


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    """Test engine on a throwaway SQLite file (or TEST_DATABASE_URL).

    Sets the global session factory so routes using get_session_factory()
    hit the test database.
    """
    import devhance.db.base as db_mod

    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'devhance_test.db'}"
    engine = create_async_engine(url, echo=False)
    enable_sqlite_foreign_keys(engine)

    # Import all models so metadata is populated
    import devhance.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncSession:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def media() -> FakeMediaService:
    return FakeMediaService()


@pytest.fixture
def app(engine, media):
    """The real application with the media host swapped out.

    ASGITransport does not run the lifespan, so the engine fixture's globals
    are what the routes see.
    """
    from devhance.main import create_app

    app = create_app()
    app.dependency_overrides[get_media_service] = lambda: media
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncClient:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def login(app):
    """Act as ``user_id`` for subsequent requests; ``login(None)`` goes anonymous."""

    def _login(user_id: str | None, email: str | None = None) -> None:
        if user_id is None:
            app.dependency_overrides.pop(require_auth, None)
            app.dependency_overrides.pop(optional_auth, None)
            return
        user = ClerkUser(user_id=user_id, claims={"sub": user_id, "email": email})
        app.dependency_overrides[require_auth] = lambda: user
        app.dependency_overrides[optional_auth] = lambda: user

    return _login


@pytest.fixture
def create_user(db_session):
    async def _create(user_id: str, username: str, complete: bool = True, **fields) -> User:
        fields.setdefault("display_name", username.title())
        user = User(id=user_id, username=username, is_profile_complete=complete, **fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _create
