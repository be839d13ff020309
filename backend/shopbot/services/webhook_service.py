# /shopbot/services/webhook_service.py

import structlog
from typing import Any, Optional, TypedDict

from pydantic import ValidationError

from shopbot.models.webhook import INCOMING_MESSAGE_WEBHOOK, IncomingWebhook, extract_message_content
from shopbot.utils.errors import WebhookError

logger = structlog.get_logger(__name__)


class WebhookHandlerResult(TypedDict):
    handled: bool
    action: Optional[str]


class WebhookService:
    """
    Bridges the Green API webhook and the flow engine: validates the payload,
    runs one engine turn and sends whatever the turn produced.
    """

    def __init__(self, engine, sender):
        self.engine = engine
        self.sender = sender

    def parse_payload(self, body: Any) -> IncomingWebhook:
        try:
            return IncomingWebhook.model_validate(body)
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field = ".".join(str(part) for part in first.get("loc", ())) or "unknown"
            logger.error("webhook_parse_error", field=field, error=first.get("msg"))
            raise WebhookError(f"Invalid webhook payload: {first.get('msg', 'validation failed')}", field) from e

    async def handle(self, body: Any) -> WebhookHandlerResult:
        payload = self.parse_payload(body)
        message = extract_message_content(payload)
        chat_id = payload.senderData.chatId

        logger.info(
            "webhook_received",
            chat_id=chat_id,
            message_id=payload.idMessage,
            type_webhook=payload.typeWebhook,
            type_message=payload.messageData.typeMessage,
            extracted_type=message.type if message else None,
        )

        if payload.typeWebhook != INCOMING_MESSAGE_WEBHOOK:
            logger.warning("ignored_webhook_type", type_webhook=payload.typeWebhook)
            return {"handled": False, "action": "ignored_webhook_type"}

        if message is None:
            logger.warning("ignored_unsupported", type_message=payload.messageData.typeMessage, chat_id=chat_id)
            return {"handled": False, "action": "ignored_unsupported"}

        result = await self.engine.process(chat_id, message)
        if not result.handled:
            logger.info("flow_not_handled", chat_id=chat_id)
            return {"handled": False, "action": "flow_processed"}

        if result.pre_message:
            await self.sender.send_message(chat_id, result.pre_message)

        if result.buttons:
            await self.sender.send_buttons(
                chat_id,
                result.buttons.body,
                result.buttons.options,
                header=result.buttons.header,
                footer=result.buttons.footer,
            )
        elif result.response:
            await self.sender.send_message(chat_id, result.response)

        logger.info("flow_processed", chat_id=chat_id, session_ended=result.session_ended)
        return {"handled": True, "action": "flow_processed"}
