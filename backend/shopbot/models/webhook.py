# /shopbot/models/webhook.py

from pydantic import BaseModel, ConfigDict
from typing import Optional

from shopbot.models.flow import InboundMessage

# Pydantic models for the Green API "incomingMessageReceived" webhook, plus
# the normalization of its many message shapes into an InboundMessage.
# Field names mirror the provider's camelCase JSON; unknown fields are kept
# out of the models and ignored.

INCOMING_MESSAGE_WEBHOOK = "incomingMessageReceived"

_PROVIDER = ConfigDict(extra="ignore")


class InstanceData(BaseModel):
    model_config = _PROVIDER

    idInstance: int
    wid: str


class SenderData(BaseModel):
    model_config = _PROVIDER

    chatId: str
    sender: str


class TextMessageData(BaseModel):
    model_config = _PROVIDER

    textMessage: str


class ButtonsResponse(BaseModel):
    model_config = _PROVIDER

    selectedButtonId: Optional[str] = None
    selectedButtonText: Optional[str] = None
    stanzaId: Optional[str] = None


class TemplateButtonReply(BaseModel):
    model_config = _PROVIDER

    selectedId: Optional[str] = None
    selectedDisplayText: Optional[str] = None
    selectedIndex: Optional[int] = None
    stanzaId: Optional[str] = None


class FileMessageData(BaseModel):
    model_config = _PROVIDER

    downloadUrl: str
    caption: Optional[str] = None
    mimeType: Optional[str] = None
    jpegThumbnail: Optional[str] = None
    isForwarded: Optional[bool] = None
    forwardingScore: Optional[int] = None


class MessageData(BaseModel):
    model_config = _PROVIDER

    typeMessage: str
    textMessageData: Optional[TextMessageData] = None
    buttonsResponseMessage: Optional[ButtonsResponse] = None
    interactiveButtonsResponse: Optional[ButtonsResponse] = None
    templateButtonReplyMessage: Optional[TemplateButtonReply] = None
    fileMessageData: Optional[FileMessageData] = None


class IncomingWebhook(BaseModel):
    model_config = _PROVIDER

    typeWebhook: str
    instanceData: InstanceData
    senderData: SenderData
    messageData: MessageData
    idMessage: str


def extract_message_content(payload: IncomingWebhook) -> Optional[InboundMessage]:
    """
    Normalizes a webhook into text or image input for the flow engine.
    Button replies yield the selected button id, falling back to its text.
    Returns None for message types the bot does not handle.
    """
    data = payload.messageData
    kind = data.typeMessage
    content = None

    if kind == "textMessage":
        content = data.textMessageData.textMessage if data.textMessageData else None
    elif kind in ("buttonsResponseMessage", "interactiveButtonsResponse"):
        reply = data.buttonsResponseMessage if kind == "buttonsResponseMessage" else data.interactiveButtonsResponse
        if reply:
            content = reply.selectedButtonId or reply.selectedButtonText
    elif kind == "templateButtonsReplyMessage":
        reply = data.templateButtonReplyMessage
        if reply:
            content = reply.selectedId or reply.selectedDisplayText
    elif kind == "imageMessage":
        file_data = data.fileMessageData
        if file_data and file_data.downloadUrl:
            return InboundMessage.image(file_data.downloadUrl, file_data.mimeType)
        return None

    return InboundMessage.text(content) if content else None
