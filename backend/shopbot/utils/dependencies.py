# /shopbot/utils/dependencies.py

from fastapi import HTTPException, Request

from shopbot.services.webhook_service import WebhookService


def get_webhook_service(request: Request) -> WebhookService:
    """Returns the webhook service wired up during application startup."""
    service = getattr(request.app.state, "webhook_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return service
