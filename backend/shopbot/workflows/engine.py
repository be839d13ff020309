# /shopbot/workflows/engine.py

"""
Flow interpreter.

Walks a ``FlowDefinition`` one inbound message at a time. Each turn loads the
conversation's session, dispatches on the type of its current step, writes
the session back and returns a ``FlowResult`` telling the webhook layer what
to send. The engine never sends anything itself.

A turn runs entirely inside ``store.lock(conversation_id)``, so two messages
from the same chat are never interleaved. Entering an Action step runs it
in the same turn; consecutive Action hops are capped by ``max_hops``.
"""

import uuid
import structlog
from typing import Optional

from shopbot.models.domain import CreateProductInput, ProductImage, StagedImage, StagedProduct
from shopbot.models.flow import (
    ActionName, ActionStep, ButtonOption, ChoiceStep, FlowButtons, FlowDefinition, FlowResult,
    ImageInputStep, InboundMessage, InputStep, Session, TerminalStep, TriggerStep,
)
from shopbot.services.session_store import InMemorySessionStore
from shopbot.services.woocommerce_service import CatalogClient
from shopbot.utils.errors import CatalogError
from shopbot.utils.metrics import active_sessions_gauge, flow_actions_counter, flow_turns_counter
from shopbot.workflows.definitions import RECOVERY_STEP_ID
from shopbot.workflows.fields import (
    build_missing_fields_prompt, format_price, is_complete, merge_and_validate, parse_fields,
)

logger = structlog.get_logger(__name__)

CANCEL_KEYWORD = "stop"
PRODUCT_INPUT_KEY = "productInput"
PRODUCT_DATA_KEY = "productData"
PRODUCT_IMAGE_KEY = "productImage"

ERROR_MESSAGE_KEYS = {
    "network_error": "error_network",
    "unauthorized": "error_unauthorized",
    "forbidden": "error_forbidden",
    "not_found": "error_not_found",
    "duplicate_sku": "error_duplicate_sku",
    "invalid_data": "error_invalid_data",
    "image_upload_error": "error_image_upload",
    "server_error": "error_server",
    "unknown": "error_unknown",
}


def join_paragraphs(*parts: Optional[str]) -> Optional[str]:
    """Joins the non-empty parts with a blank line; None when nothing is left."""
    present = [part for part in parts if part]
    return "\n\n".join(present) if present else None


class FlowEngine:
    def __init__(self, store: InMemorySessionStore, flow: FlowDefinition, strings,
                 trigger_code: Optional[str] = None, catalog: Optional[CatalogClient] = None, max_hops: int = 3,
                 list_limit: int = 20):
        self.store = store
        self.flow = flow
        self.strings = strings
        self.trigger_code = trigger_code.strip() if trigger_code and trigger_code.strip() else None
        self.catalog = catalog
        self.max_hops = max_hops
        self.list_limit = list_limit

    async def process(self, conversation_id: str, message: InboundMessage) -> FlowResult:
        """Runs one turn for ``conversation_id`` and returns what to send back."""
        async with self.store.lock(conversation_id):
            session = self.store.get(conversation_id)
            if session is None:
                result, step_type = await self._start(conversation_id, message), "trigger"
            else:
                step = self.flow.steps.get(session.current_step)
                if step is None:
                    logger.warning("invalid_session_step", conversation_id=conversation_id,
                                   step_id=session.current_step)
                    self.store.delete(conversation_id)
                    result, step_type = FlowResult(handled=False), "unknown"
                else:
                    result, step_type = await self._dispatch(session, step, message), step.type

            flow_turns_counter.labels(step_type=step_type, handled=str(result.handled).lower()).inc()
            active_sessions_gauge.set(len(self.store))
            return result

    async def _dispatch(self, session: Session, step, message: InboundMessage) -> FlowResult:
        if isinstance(step, TriggerStep):
            return await self._handle_trigger(session.conversation_id, step, message)
        if isinstance(step, ChoiceStep):
            return await self._handle_choice(session, step, message)
        if isinstance(step, InputStep):
            return await self._handle_input(session, step, message)
        if isinstance(step, ImageInputStep):
            return await self._handle_image_input(session, step, message)
        if isinstance(step, ActionStep):
            return await self._enter(session, session.current_step)
        if isinstance(step, TerminalStep):
            return await self._enter(session, session.current_step)
        raise TypeError(f"Unsupported step type: {type(step).__name__}")

    # --- Trigger ---

    async def _start(self, conversation_id: str, message: InboundMessage) -> FlowResult:
        step = self.flow.steps.get(self.flow.initial_step)
        if not isinstance(step, TriggerStep):
            logger.error("invalid_initial_step", conversation_id=conversation_id,
                         step_id=self.flow.initial_step)
            return FlowResult(handled=False)
        return await self._handle_trigger(conversation_id, step, message)

    def _matches_trigger(self, message: InboundMessage) -> bool:
        if message.type != "text":
            return False
        if self.trigger_code is None:
            return True
        return message.content.strip().lower() == self.trigger_code.lower()

    async def _handle_trigger(self, conversation_id: str, step: TriggerStep, message: InboundMessage) -> FlowResult:
        if not self._matches_trigger(message):
            logger.debug("trigger_not_matched", conversation_id=conversation_id)
            return FlowResult(handled=step.on_no_match.handled)

        session = self.store.create_session(conversation_id, self.flow.initial_step)
        logger.info("session_started", conversation_id=conversation_id, flow_id=self.flow.id)
        header = self._message(step.on_match.message_key)
        return await self._enter(session, step.on_match.next_step, header=header)

    # --- Choice ---

    def _match_option(self, step: ChoiceStep, message: InboundMessage) -> Optional[str]:
        if message.type != "text":
            return None
        normalized = message.content.strip().lower()
        for option in step.options:
            if normalized == option.id.lower() or normalized in (alias.lower() for alias in option.aliases):
                return option.id
        return None

    async def _handle_choice(self, session: Session, step: ChoiceStep, message: InboundMessage) -> FlowResult:
        option_id = self._match_option(step, message)
        invalid_text = self.strings.get_string(step.on_invalid.message_key)

        if option_id is None:
            logger.info("invalid_choice", conversation_id=session.conversation_id, step_id=session.current_step)
            target = self.flow.steps.get(step.on_invalid.next_step)
            if isinstance(target, ChoiceStep):
                session.current_step = step.on_invalid.next_step
                self.store.set(session.conversation_id, session)
                return FlowResult(handled=True, buttons=self._buttons(target, header=invalid_text))
            if target is not None:
                session.current_step = step.on_invalid.next_step
                self.store.set(session.conversation_id, session)
            return FlowResult(handled=True, response=invalid_text)

        transition = step.transitions.get(option_id)
        if transition is None:
            logger.warning("choice_transition_missing", conversation_id=session.conversation_id,
                           step_id=session.current_step, option_id=option_id)
            return FlowResult(handled=True, response=invalid_text)

        logger.info("choice_selected", conversation_id=session.conversation_id, option_id=option_id)
        return await self._enter(session, transition.next_step, header=self._message(transition.message_key))

    # --- Input ---

    def _is_cancel(self, message: InboundMessage) -> bool:
        return message.type == "text" and message.content.strip().lower() == CANCEL_KEYWORD

    async def _cancel(self, session: Session, context_key: str) -> FlowResult:
        for key in (PRODUCT_DATA_KEY, PRODUCT_IMAGE_KEY, context_key):
            session.context.pop(key, None)
        cancelled = self.strings.get_string("add_product_cancelled")
        logger.info("input_cancelled", conversation_id=session.conversation_id, step_id=session.current_step)

        if RECOVERY_STEP_ID not in self.flow.steps:
            logger.warning("recovery_step_missing", conversation_id=session.conversation_id)
            self.store.delete(session.conversation_id)
            return FlowResult(handled=True, response=cancelled, session_ended=True)
        return await self._enter(session, RECOVERY_STEP_ID, header=cancelled)

    async def _handle_input(self, session: Session, step: InputStep, message: InboundMessage) -> FlowResult:
        if self._is_cancel(message):
            return await self._cancel(session, step.context_key)

        if message.type != "text":
            return FlowResult(handled=True, response=self.strings.get_string(step.message_key))

        if step.context_key != PRODUCT_INPUT_KEY:
            session.context[step.context_key] = message.content
            return await self._enter(session, step.next_step)

        existing = StagedProduct.from_context(session.context.get(PRODUCT_DATA_KEY))
        merged = merge_and_validate(existing, parse_fields(message.content), self.strings)
        product, errors = merged["product"], merged["errors"]
        session.context[PRODUCT_DATA_KEY] = product.to_context()

        if errors or not is_complete(product):
            self.store.set(session.conversation_id, session)
            logger.info("product_input_incomplete", conversation_id=session.conversation_id,
                        error_count=len(errors))
            return FlowResult(handled=True, response=build_missing_fields_prompt(product, errors, self.strings))

        logger.info("product_input_complete", conversation_id=session.conversation_id)
        return await self._enter(session, step.next_step)

    async def _handle_image_input(self, session: Session, step: ImageInputStep, message: InboundMessage) -> FlowResult:
        if self._is_cancel(message):
            return await self._cancel(session, step.context_key)

        if message.type == "image":
            image = StagedImage(url=message.content, mime_type=message.mime_type)
            session.context[step.context_key] = image.model_dump(by_alias=True, exclude_none=True)
            logger.info("image_received", conversation_id=session.conversation_id)
            received = self.strings.get_string("add_product_image_received")
            return await self._enter(session, step.next_step, pre_message=received)

        skip_keyword = (step.skip_keyword or "").strip().lower()
        if step.optional and skip_keyword and message.content.strip().lower() == skip_keyword:
            logger.info("image_skipped", conversation_id=session.conversation_id)
            if isinstance(self.flow.steps.get(step.next_step), ActionStep):
                return await self._enter(session, step.next_step)
            skipped = self.strings.get_string("add_product_image_skipped")
            return await self._enter(session, step.next_step, pre_message=skipped)

        return FlowResult(handled=True, response=self.strings.get_string("add_product_image_invalid"))

    # --- Rendering ---

    def _message(self, key: Optional[str]) -> Optional[str]:
        return self.strings.get_string(key) if key else None

    def _buttons(self, step: ChoiceStep, header: Optional[str] = None) -> FlowButtons:
        return FlowButtons(
            body=self.strings.get_string(step.message_key),
            options=[ButtonOption(id=option.id, label=option.label) for option in step.options],
            header=header,
        )

    async def _enter(self, session: Session, step_id: str, header: Optional[str] = None,
                     pre_message: Optional[str] = None, hops: int = 0) -> FlowResult:
        """
        Moves the session to ``step_id`` and renders it. Choice steps become a
        button menu with ``header`` above it; other steps become text with
        ``pre_message`` and ``header`` as leading paragraphs. Action steps run
        immediately and render their successor.
        """
        conversation_id = session.conversation_id
        step = self.flow.steps.get(step_id)
        if step is None:
            logger.error("transition_target_missing", conversation_id=conversation_id, step_id=step_id)
            return FlowResult(handled=True, response=join_paragraphs(pre_message, header))

        if isinstance(step, TerminalStep):
            self.store.delete(conversation_id)
            logger.info("session_ended", conversation_id=conversation_id, step_id=step_id)
            text = join_paragraphs(pre_message, header, self._message(step.message_key))
            return FlowResult(handled=True, response=text, session_ended=True)

        session.current_step = step_id

        if isinstance(step, ActionStep):
            if hops >= self.max_hops:
                logger.warning("action_chain_limit", conversation_id=conversation_id, step_id=step_id, hops=hops)
                self.store.set(conversation_id, session)
                return FlowResult(handled=True, response=join_paragraphs(pre_message, header))
            result_text = await self._run_action(session, step)
            return await self._enter(session, step.next_step,
                                     pre_message=join_paragraphs(pre_message, header, result_text),
                                     hops=hops + 1)

        self.store.set(conversation_id, session)

        if isinstance(step, ChoiceStep):
            return FlowResult(handled=True, pre_message=pre_message, buttons=self._buttons(step, header=header))

        # Trigger, Input and ImageInput steps prompt with their own message, if any.
        text = join_paragraphs(pre_message, header, self._message(getattr(step, "message_key", None)))
        return FlowResult(handled=True, response=text)

    # --- Actions ---

    def _catalog_error_text(self, action_key: str, error: Exception) -> str:
        code = error.error_code if isinstance(error, CatalogError) else "unknown"
        detail = self.strings.get_string(ERROR_MESSAGE_KEYS.get(code, "error_unknown"))
        return f"{self.strings.get_string(action_key)}\n\n{detail}"

    async def _run_action(self, session: Session, step: ActionStep) -> str:
        logger.info("action_triggered", conversation_id=session.conversation_id, action=step.action.value)
        if step.action == ActionName.LIST_PRODUCTS:
            return await self._list_products()
        if step.action == ActionName.ADD_PRODUCT:
            return await self._add_product(session)
        raise TypeError(f"Unsupported action: {step.action}")

    async def _list_products(self) -> str:
        if self.catalog is None:
            logger.warning("catalog_not_configured", action="list_products")
            flow_actions_counter.labels(action="list_products", status="not_configured").inc()
            return self.strings.get_string("catalog_not_configured")

        try:
            products = await self.catalog.list_products(self.list_limit)
        except Exception as e:
            logger.error("list_products_error", error=str(e), exc_info=not isinstance(e, CatalogError))
            flow_actions_counter.labels(action="list_products", status="error").inc()
            return self._catalog_error_text("list_products_error", e)

        flow_actions_counter.labels(action="list_products", status="success").inc()
        logger.info("list_products_fetched", count=len(products))
        if not products:
            return self.strings.get_string("list_products_empty")

        lines = [f"{i}. {p.name} - {p.price} ({p.stock_status})" for i, p in enumerate(products, start=1)]
        header = self.strings.render("list_products_header", count=len(products))
        return f"{header}\n\n" + "\n".join(lines)

    async def _add_product(self, session: Session) -> str:
        product = StagedProduct.from_context(session.context.get(PRODUCT_DATA_KEY))
        if not is_complete(product):
            logger.warning("add_product_incomplete", conversation_id=session.conversation_id)
            flow_actions_counter.labels(action="add_product", status="incomplete").inc()
            return self.strings.get_string("product_data_incomplete")

        if self.catalog is None:
            logger.warning("catalog_not_configured", action="add_product")
            flow_actions_counter.labels(action="add_product", status="not_configured").inc()
            return self.strings.get_string("catalog_not_configured")

        product.sku = str(uuid.uuid4())
        session.context[PRODUCT_DATA_KEY] = product.to_context()

        raw_image = session.context.get(PRODUCT_IMAGE_KEY)
        image = StagedImage.model_validate(raw_image) if isinstance(raw_image, dict) and raw_image.get("url") else None
        product_input = CreateProductInput(
            name=product.name,
            regular_price=format_price(product.price),
            stock_quantity=product.stock,
            description=product.description,
            sku=product.sku,
            images=[ProductImage(src=image.url, name=product.name)] if image else [],
        )
        logger.info("add_product_processing", conversation_id=session.conversation_id,
                    sku=product.sku, has_image=image is not None)

        try:
            created = await self.catalog.create_product(product_input)
        except Exception as e:
            logger.error("add_product_error", conversation_id=session.conversation_id, sku=product.sku,
                         error=str(e), exc_info=not isinstance(e, CatalogError))
            flow_actions_counter.labels(action="add_product", status="error").inc()
            return self._catalog_error_text("add_product_error", e)

        session.context.pop(PRODUCT_DATA_KEY, None)
        session.context.pop(PRODUCT_IMAGE_KEY, None)
        flow_actions_counter.labels(action="add_product", status="success").inc()
        logger.info("add_product_success", conversation_id=session.conversation_id,
                    product_id=created.id, sku=created.sku)
        return self.strings.render("add_product_received", name=created.name, permalink=created.permalink)
