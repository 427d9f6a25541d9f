"""Translation of storage failures into the application error taxonomy."""

from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.core.exceptions import StorageError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def storage_errors(session: AsyncSession, operation: str, **context):
    """Roll back and raise StorageError when the wrapped block fails in SQLAlchemy.

    IntegrityError handling that maps to Conflict must happen inside the block;
    anything that escapes here is opaque to the caller.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "storage_operation_failed",
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        raise StorageError() from exc
