# /shopbot/models/flow.py

from enum import Enum
from datetime import datetime
from typing import Annotated, Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Flow definitions are PURE DATA: steps carry no behaviour. They are loaded
# once at startup and shared read-only by every conversation. Field NAMES
# accept both snake_case and camelCase; enum VALUES such as step types and
# action names are snake_case only, and the timeout is given in seconds.

_FROZEN = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ActionName(str, Enum):
    LIST_PRODUCTS = "list_products"
    ADD_PRODUCT = "add_product"


class StepTransition(BaseModel):
    model_config = _FROZEN

    next_step: str
    message_key: Optional[str] = None


class StepOption(BaseModel):
    model_config = _FROZEN

    id: str
    label: str
    aliases: List[str] = Field(default_factory=list)


class NoMatchBehaviour(BaseModel):
    model_config = _FROZEN

    handled: bool = False


class InvalidChoice(BaseModel):
    model_config = _FROZEN

    message_key: str
    next_step: str


class TriggerStep(BaseModel):
    """Entry point. Starts a session when the inbound text matches the trigger code."""
    model_config = _FROZEN

    type: Literal["trigger"] = "trigger"
    on_match: StepTransition
    on_no_match: NoMatchBehaviour = Field(default_factory=NoMatchBehaviour)


class ChoiceStep(BaseModel):
    """Button menu. Input is matched against option ids and aliases."""
    model_config = _FROZEN

    type: Literal["choice"] = "choice"
    message_key: str
    options: List[StepOption]
    transitions: Dict[str, StepTransition]
    on_invalid: InvalidChoice


class InputStep(BaseModel):
    """Free text collected into the session context under ``context_key``."""
    model_config = _FROZEN

    type: Literal["input"] = "input"
    message_key: str
    context_key: str
    next_step: str


class ImageInputStep(BaseModel):
    model_config = _FROZEN

    type: Literal["image_input"] = "image_input"
    message_key: str
    context_key: str
    next_step: str
    optional: bool = False
    skip_keyword: Optional[str] = None


class ActionStep(BaseModel):
    """Runs a catalog operation without waiting for user input."""
    model_config = _FROZEN

    type: Literal["action"] = "action"
    action: ActionName
    next_step: str


class TerminalStep(BaseModel):
    model_config = _FROZEN

    type: Literal["terminal"] = "terminal"
    message_key: Optional[str] = None


Step = Annotated[
    Union[TriggerStep, ChoiceStep, InputStep, ImageInputStep, ActionStep, TerminalStep],
    Field(discriminator="type"),
]


class FlowDefinition(BaseModel):
    model_config = ConfigDict(**_FROZEN, extra="forbid")

    id: str
    initial_step: str
    session_timeout_seconds: int = Field(default=300, gt=0)
    steps: Dict[str, Step]


class Session(BaseModel):
    """
    Per-conversation state. ``context`` is a free-form bag holding staged
    records (e.g. ``productData``) and transient values (e.g. ``productImage``).
    """
    conversation_id: str
    current_step: str
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


class InboundMessage(BaseModel):
    """A provider-neutral inbound message, normalized by the webhook layer."""
    type: Literal["text", "image"]
    content: str
    mime_type: Optional[str] = None

    @classmethod
    def text(cls, content: str) -> "InboundMessage":
        return cls(type="text", content=content)

    @classmethod
    def image(cls, url: str, mime_type: Optional[str] = None) -> "InboundMessage":
        return cls(type="image", content=url, mime_type=mime_type)


class ButtonOption(BaseModel):
    id: str
    label: str


class FlowButtons(BaseModel):
    body: str
    options: List[ButtonOption]
    header: Optional[str] = None
    footer: Optional[str] = None


class FlowResult(BaseModel):
    """
    What the webhook layer should send back. ``pre_message`` is sent first,
    then ``buttons`` if present, otherwise ``response``.
    """
    handled: bool
    pre_message: Optional[str] = None
    response: Optional[str] = None
    buttons: Optional[FlowButtons] = None
    session_ended: bool = False
