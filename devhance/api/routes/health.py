import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from devhance.db.base import get_session_factory

logger = structlog.get_logger(__name__)

router = APIRouter()

REQUIRED_TABLES = ("users", "projects", "project_likes", "project_comments")


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for the load balancer.

    Returns 503 during graceful shutdown or when the database is unreachable.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "devhance-backend"},
        )

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health_check_database_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "service": "devhance-backend"},
        )

    return {"status": "healthy", "service": "devhance-backend"}


@router.get("/check-schema")
async def check_schema():
    """Report which of the application tables exist in the connected database."""
    async with get_session_factory()() as session:
        connection = await session.connection()
        existing = await connection.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

    tables = {name: name in existing for name in REQUIRED_TABLES}
    return {"ok": all(tables.values()), "tables": tables}
