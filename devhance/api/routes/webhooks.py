"""Identity-provider webhooks. Authenticated by signature, not by bearer token."""

from fastapi import APIRouter, Depends, Request

from devhance.db.base import get_session_factory
from devhance.services.clerk_webhook_service import ClerkWebhookService, verify_clerk_webhook

router = APIRouter()


def get_clerk_webhook_service() -> ClerkWebhookService:
    return ClerkWebhookService(get_session_factory())


@router.post("/clerk")
async def clerk_webhook(
    request: Request,
    service: ClerkWebhookService = Depends(get_clerk_webhook_service),
):
    """Mirror Clerk user.created / user.updated / user.deleted into the users table.

    Raises:
        HTTPException(400): missing or invalid Svix signature
        HTTPException(503): webhook secret not configured
    """
    body = await request.body()
    event = verify_clerk_webhook(body, dict(request.headers))
    return await service.handle(event)
