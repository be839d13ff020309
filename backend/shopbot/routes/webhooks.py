# /shopbot/routes/webhooks.py

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from shopbot.services.webhook_service import WebhookService
from shopbot.utils.dependencies import get_webhook_service
from shopbot.utils.errors import WebhookError
from shopbot.utils.metrics import response_time_histogram

# The Green API webhook. Failures are reported with a 200 status so the
# provider does not redeliver a message the bot could not handle.

router = APIRouter(tags=["Webhooks"])
log = structlog.get_logger(__name__)

@router.post("/webhook")
async def handle_green_api_webhook(
    request: Request,
    webhook_service: WebhookService = Depends(get_webhook_service)
):
    """Processes one incoming Green API notification."""
    with response_time_histogram.labels(endpoint="webhook").time():
        try:
            body = await request.json()
        except ValueError:
            log.error("webhook_invalid_json")
            return JSONResponse({"ok": False, "error": "Invalid JSON"})

        try:
            result = await webhook_service.handle(body)
        except WebhookError as e:
            log.error("webhook_invalid_payload", field=e.field, error=str(e))
            return JSONResponse({"ok": False, "error": "Invalid payload", "field": e.field})
        except Exception as e:
            log.error("webhook_processing_error", error=str(e), exc_info=True)
            return JSONResponse({"ok": False, "error": "Processing failed"})

        return JSONResponse({"ok": True, **result})
