# /shopbot/services/greenapi_service.py

import httpx
import logging
from typing import List, Optional, Dict, Any

from shopbot.models.flow import ButtonOption
from shopbot.utils.circuit_breaker import CircuitBreaker
from shopbot.utils.errors import CircuitOpenError, SenderError
from shopbot.utils.metrics import outbound_messages_counter

logger = logging.getLogger(__name__)


class GreenApiService:
    """Sends WhatsApp messages through the Green API HTTP gateway."""

    def __init__(self, instance_id: str, token: str, base_url: str = "https://api.green-api.com",
                 http_client: Optional[httpx.AsyncClient] = None):
        self.instance_id = instance_id
        self.token = token
        self.base_url = f"{base_url.rstrip('/')}/waInstance{instance_id}"
        self.http_client = http_client or httpx.AsyncClient(timeout=15.0)
        self.circuit_breaker = CircuitBreaker("greenapi", tracked_exceptions=(httpx.RequestError,))

    async def _post(self, method: str, payload: Dict[str, Any], kind: str) -> str:
        """Posts to a Green API method and returns the new message id."""
        url = f"{self.base_url}/{method}/{self.token}"
        chat_id = payload.get("chatId")
        try:
            response = await self.circuit_breaker.call(self.http_client.post, url, json=payload)
        except (httpx.RequestError, CircuitOpenError) as e:
            logger.error(f"greenapi_network_error sending {kind} to {chat_id}: {e}")
            outbound_messages_counter.labels(kind=kind, status="network_error").inc()
            raise SenderError("Network error sending message") from e

        if response.status_code >= 400:
            logger.error(f"greenapi_api_error sending {kind} to {chat_id}: {response.status_code} - {response.text[:500]}")
            outbound_messages_counter.labels(kind=kind, status="api_error").inc()
            raise SenderError(f"Green API error: {response.status_code}", response.status_code)

        try:
            message_id = response.json().get("idMessage")
        except ValueError as e:
            raise SenderError("Green API returned an invalid response") from e

        outbound_messages_counter.labels(kind=kind, status="sent").inc()
        logger.info(f"Green API {kind} sent to {chat_id}, idMessage: {message_id}")
        return message_id

    async def send_message(self, chat_id: str, message: str) -> str:
        return await self._post("sendMessage", {"chatId": chat_id, "message": message}, "text")

    async def send_buttons(self, chat_id: str, body: str, buttons: List[ButtonOption],
                           header: Optional[str] = None, footer: Optional[str] = None) -> str:
        """Sends an interactive reply-buttons message. Header and footer are optional."""
        payload: Dict[str, Any] = {
            "chatId": chat_id,
            "body": body,
            "buttons": [{"buttonId": b.id, "buttonText": b.label} for b in buttons],
        }
        if header:
            payload["header"] = header
        if footer:
            payload["footer"] = footer
        logger.info(f"Sending {len(buttons)} buttons to {chat_id}.")
        return await self._post("sendInteractiveButtonsReply", payload, "buttons")

    async def close(self):
        await self.http_client.aclose()


class MockSender:
    """Logs outbound messages instead of sending them. Used in mock mode and tests."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"mock-msg-{self._counter}"

    async def send_message(self, chat_id: str, message: str) -> str:
        message_id = self._next_id()
        self.sent.append({"kind": "text", "chat_id": chat_id, "message": message, "id": message_id})
        logger.info(f"[MOCK] message to {chat_id} ({message_id}): {message}")
        return message_id

    async def send_buttons(self, chat_id: str, body: str, buttons: List[ButtonOption],
                           header: Optional[str] = None, footer: Optional[str] = None) -> str:
        message_id = self._next_id()
        self.sent.append({
            "kind": "buttons", "chat_id": chat_id, "body": body, "header": header, "footer": footer,
            "buttons": [b.id for b in buttons], "id": message_id,
        })
        logger.info(f"[MOCK] {len(buttons)} buttons to {chat_id} ({message_id}): {body}")
        return message_id

    async def close(self):
        return None
