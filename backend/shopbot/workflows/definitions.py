# /shopbot/workflows/definitions.py

"""
Flow definitions.

The default shop flow is pure data, in the same shape a JSON flow file
uses. ``load_flow_definition`` turns either into a validated, immutable
``FlowDefinition``; any structural problem is a ``FlowConfigError`` and
must stop the service from starting.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from pydantic import ValidationError

from shopbot.models.flow import FlowDefinition
from shopbot.utils.errors import FlowConfigError
from shopbot.workflows.validator import validate_flow

logger = logging.getLogger(__name__)

# Conventional id of the intent menu that "stop" returns to.
RECOVERY_STEP_ID = "awaiting_intent"

SHOP_FLOW: Dict[str, Any] = {
    "id": "shop_update",
    "initial_step": "awaiting_trigger",
    "session_timeout_seconds": 300,
    "steps": {
        "awaiting_trigger": {
            "type": "trigger",
            "on_match": {"next_step": "awaiting_intent", "message_key": "welcome"},
            "on_no_match": {"handled": False}
        },
        "awaiting_intent": {
            "type": "choice",
            "message_key": "intent_prompt",
            "options": [
                {"id": "list", "label": "List Products", "aliases": ["1", "list", "list products"]},
                {"id": "add", "label": "Add New Product", "aliases": ["2", "add", "add product"]},
                {"id": "done", "label": "Done", "aliases": ["3", "exit", "bye"]}
            ],
            "transitions": {
                "list": {"next_step": "list_products"},
                "add": {"next_step": "add_product"},
                "done": {"next_step": "session_closed"}
            },
            "on_invalid": {"message_key": "invalid_choice", "next_step": "awaiting_intent"}
        },
        "list_products": {
            "type": "action",
            "action": "list_products",
            "next_step": "awaiting_intent"
        },
        "add_product": {
            "type": "input",
            "message_key": "add_product_prompt",
            "context_key": "productInput",
            "next_step": "awaiting_product_image"
        },
        "awaiting_product_image": {
            "type": "image_input",
            "message_key": "add_product_image_prompt",
            "context_key": "productImage",
            "next_step": "process_add_product",
            "optional": True,
            "skip_keyword": "skip"
        },
        "process_add_product": {
            "type": "action",
            "action": "add_product",
            "next_step": "awaiting_intent"
        },
        "session_closed": {
            "type": "terminal",
            "message_key": "goodbye"
        }
    }
}


def build_flow_definition(data: Dict[str, Any]) -> FlowDefinition:
    """Validates raw flow data (schema and step references) into a FlowDefinition."""
    try:
        flow = FlowDefinition.model_validate(data)
    except ValidationError as e:
        raise FlowConfigError(f"Invalid flow definition: {e}") from e

    result = validate_flow(flow)
    if not result["is_valid"]:
        raise FlowConfigError(result["message"], step_id=result["step_id"])
    return flow


def load_flow_definition(path: Optional[str] = None) -> FlowDefinition:
    """Loads the flow from a JSON file, or the built-in shop flow when no path is given."""
    if not path:
        flow = build_flow_definition(SHOP_FLOW)
        logger.info(f"Loaded built-in flow '{flow.id}' with {len(flow.steps)} steps.")
        return flow

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise FlowConfigError(f"Failed to read flow definition from {path}: {e}") from e

    flow = build_flow_definition(data)
    logger.info(f"Loaded flow '{flow.id}' from {path} with {len(flow.steps)} steps.")
    return flow
