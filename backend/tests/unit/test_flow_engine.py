# backend/tests/unit/test_flow_engine.py
import asyncio
import uuid
import pytest

from shopbot.models.domain import CreateProductInput, ProductImage
from shopbot.models.flow import InboundMessage
from shopbot.utils.errors import CatalogError
from shopbot.workflows.definitions import build_flow_definition
from shopbot.workflows.engine import FlowEngine

CHAT = "15551234567@c.us"
IMAGE_URL = "https://cdn.example.com/photo.jpg"


def text(content):
    return InboundMessage.text(content)


async def start_session(engine):
    result = await engine.process(CHAT, text("shop"))
    assert result.handled is True
    return result


async def open_add_product(engine):
    await start_session(engine)
    return await engine.process(CHAT, text("2"))


async def stage_complete_product(engine):
    await open_add_product(engine)
    return await engine.process(CHAT, text("Name: Widget\nPrice: 19.99\nStock: 5"))


# --- Trigger ---

@pytest.mark.asyncio
async def test_non_trigger_text_is_not_handled(engine, store):
    result = await engine.process(CHAT, text("hello"))

    assert result.handled is False
    assert result.response is None and result.buttons is None
    assert store.get(CHAT) is None


@pytest.mark.asyncio
async def test_image_never_matches_trigger(engine, store):
    result = await engine.process(CHAT, InboundMessage.image(IMAGE_URL, "image/jpeg"))

    assert result.handled is False
    assert store.get(CHAT) is None


@pytest.mark.asyncio
async def test_trigger_is_case_and_whitespace_insensitive(engine, store, strings):
    result = await engine.process(CHAT, text("  SHOP \n"))

    assert result.handled is True
    assert result.buttons.header == strings.get_string("welcome")
    assert result.buttons.body == strings.get_string("intent_prompt")
    assert [option.id for option in result.buttons.options] == ["list", "add", "done"]
    assert store.get(CHAT).current_step == "awaiting_intent"


@pytest.mark.asyncio
async def test_any_text_starts_session_without_trigger_code(store, flow, strings, catalog):
    engine = FlowEngine(store, flow, strings, trigger_code=None, catalog=catalog)

    result = await engine.process(CHAT, text("anything at all"))

    assert result.handled is True
    assert store.get(CHAT).current_step == "awaiting_intent"


@pytest.mark.asyncio
async def test_blank_trigger_code_matches_everything(store, flow, strings):
    engine = FlowEngine(store, flow, strings, trigger_code="   ")

    result = await engine.process(CHAT, text("hi"))

    assert result.handled is True


@pytest.mark.asyncio
async def test_trigger_on_non_choice_target_renders_text(store, strings):
    flow = build_flow_definition({
        "id": "greeting",
        "initialStep": "start",
        "steps": {
            "start": {"type": "trigger", "onMatch": {"nextStep": "ask", "messageKey": "welcome"}},
            "ask": {"type": "input", "messageKey": "add_product_prompt", "contextKey": "note", "nextStep": "bye"},
            "bye": {"type": "terminal", "messageKey": "goodbye"},
        },
    })
    engine = FlowEngine(store, flow, strings)

    result = await engine.process(CHAT, text("hi"))

    assert result.buttons is None
    assert result.response == f"{strings.get_string('welcome')}\n\n{strings.get_string('add_product_prompt')}"


@pytest.mark.asyncio
async def test_session_parked_on_trigger_restarts_only_on_match(store, strings):
    flow = build_flow_definition({
        "id": "restartable",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "menu"}, "on_no_match": {"handled": True}},
            "menu": {
                "type": "choice",
                "message_key": "intent_prompt",
                "options": [{"id": "note", "label": "Note"}, {"id": "again", "label": "Again"}],
                "transitions": {"note": {"next_step": "ask"}, "again": {"next_step": "start"}},
                "on_invalid": {"message_key": "invalid_choice", "next_step": "menu"},
            },
            "ask": {"type": "input", "message_key": "add_product_prompt", "context_key": "note", "next_step": "menu"},
        },
    })
    engine = FlowEngine(store, flow, strings, trigger_code="go")
    await engine.process(CHAT, text("go"))
    await engine.process(CHAT, text("note"))
    await engine.process(CHAT, text("remember me"))

    parked = await engine.process(CHAT, text("again"))

    assert parked.handled is True
    assert store.get(CHAT).current_step == "start"
    assert store.get(CHAT).context == {"note": "remember me"}

    ignored = await engine.process(CHAT, text("nope"))

    assert ignored.handled is True
    assert ignored.response is None and ignored.buttons is None
    assert store.get(CHAT).current_step == "start"
    assert store.get(CHAT).context == {"note": "remember me"}

    restarted = await engine.process(CHAT, text(" GO "))

    assert restarted.buttons.body == strings.get_string("intent_prompt")
    assert store.get(CHAT).current_step == "menu"
    assert store.get(CHAT).context == {}


# --- Choice ---

@pytest.mark.asyncio
async def test_invalid_choice_reprompt_is_idempotent(engine, store, strings):
    await start_session(engine)

    first = await engine.process(CHAT, text("banana"))
    second = await engine.process(CHAT, text("banana"))

    assert first == second
    assert first.buttons.header == strings.get_string("invalid_choice")
    assert first.buttons.body == strings.get_string("intent_prompt")
    assert store.get(CHAT).current_step == "awaiting_intent"


@pytest.mark.asyncio
async def test_image_on_choice_takes_invalid_path(engine, strings):
    await start_session(engine)

    result = await engine.process(CHAT, InboundMessage.image(IMAGE_URL))

    assert result.handled is True
    assert result.buttons.header == strings.get_string("invalid_choice")


@pytest.mark.asyncio
@pytest.mark.parametrize("choice", ["2", "add", "ADD PRODUCT", " Add "])
async def test_choice_matches_id_and_aliases(engine, store, strings, choice):
    await start_session(engine)

    result = await engine.process(CHAT, text(choice))

    assert result.response == strings.get_string("add_product_prompt")
    assert store.get(CHAT).current_step == "add_product"


@pytest.mark.asyncio
async def test_matched_option_without_transition_is_treated_as_invalid(store, strings):
    flow = build_flow_definition({
        "id": "partial",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "menu"}},
            "menu": {
                "type": "choice",
                "message_key": "intent_prompt",
                "options": [{"id": "a", "label": "A"}, {"id": "b", "label": "B"}],
                "transitions": {"a": {"next_step": "end"}},
                "on_invalid": {"message_key": "invalid_choice", "next_step": "menu"},
            },
            "end": {"type": "terminal"},
        },
    })
    engine = FlowEngine(store, flow, strings)
    await engine.process(CHAT, text("hi"))
    before = store.get(CHAT)

    result = await engine.process(CHAT, text("b"))

    assert result.handled is True
    assert result.response == strings.get_string("invalid_choice")
    assert result.buttons is None
    assert store.get(CHAT).current_step == before.current_step


@pytest.mark.asyncio
async def test_done_ends_session(engine, store, strings):
    await start_session(engine)

    result = await engine.process(CHAT, text("3"))

    assert result.session_ended is True
    assert result.response == strings.get_string("goodbye")
    assert store.get(CHAT) is None


# --- Product input ---

@pytest.mark.asyncio
async def test_partial_input_accumulates_across_turns(engine, store, strings):
    await open_add_product(engine)

    first = await engine.process(CHAT, text("Name: Widget"))
    assert "✓ Name: Widget" in first.response
    assert "Price: 29.99" in first.response
    assert "Stock: 10" in first.response
    assert store.get(CHAT).context["productData"] == {"name": "Widget"}

    second = await engine.process(CHAT, text("Price: abc\nStock: 5"))
    assert second.response.startswith("⚠️ " + strings.get_string("validation_error_price"))
    assert store.get(CHAT).context["productData"] == {"name": "Widget", "stock": 5}
    assert store.get(CHAT).current_step == "add_product"

    third = await engine.process(CHAT, text("Price: 19.99"))
    assert third.response == strings.get_string("add_product_image_prompt")
    session = store.get(CHAT)
    assert session.current_step == "awaiting_product_image"
    assert session.context["productData"] == {"name": "Widget", "price": 19.99, "stock": 5}


@pytest.mark.asyncio
async def test_invalid_value_never_overwrites_accepted_value(engine, store):
    await open_add_product(engine)
    await engine.process(CHAT, text("Name: Widget\nStock: 7"))

    await engine.process(CHAT, text("Stock: -1"))

    assert store.get(CHAT).context["productData"]["stock"] == 7


@pytest.mark.asyncio
async def test_image_on_text_input_reprompts(engine, store, strings):
    await open_add_product(engine)

    result = await engine.process(CHAT, InboundMessage.image(IMAGE_URL))

    assert result.response == strings.get_string("add_product_prompt")
    assert store.get(CHAT).current_step == "add_product"


@pytest.mark.asyncio
async def test_plain_input_step_stores_raw_text(store, strings):
    flow = build_flow_definition({
        "id": "note",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "ask"}},
            "ask": {"type": "input", "message_key": "add_product_prompt", "context_key": "note", "next_step": "wait"},
            "wait": {"type": "input", "message_key": "intent_prompt", "context_key": "other", "next_step": "end"},
            "end": {"type": "terminal"},
        },
    })
    engine = FlowEngine(store, flow, strings)
    await engine.process(CHAT, text("hi"))

    result = await engine.process(CHAT, text("  remember the milk  "))

    assert result.response == strings.get_string("intent_prompt")
    assert store.get(CHAT).context["note"] == "  remember the milk  "


# --- Cancellation ---

@pytest.mark.asyncio
@pytest.mark.parametrize("keyword", ["stop", " STOP ", "Stop"])
async def test_stop_during_input_clears_staged_product(engine, store, strings, keyword):
    await open_add_product(engine)
    await engine.process(CHAT, text("Name: Widget\nPrice: 10"))

    result = await engine.process(CHAT, text(keyword))

    session = store.get(CHAT)
    assert session.current_step == "awaiting_intent"
    assert "productData" not in session.context
    assert "productInput" not in session.context
    assert result.buttons.header == strings.get_string("add_product_cancelled")
    assert result.buttons.body == strings.get_string("intent_prompt")


@pytest.mark.asyncio
async def test_stop_during_image_step_clears_staged_product_and_image(engine, store, strings):
    await stage_complete_product(engine)

    result = await engine.process(CHAT, text("stop"))

    session = store.get(CHAT)
    assert session.current_step == "awaiting_intent"
    assert "productData" not in session.context
    assert "productImage" not in session.context
    assert result.buttons.header == strings.get_string("add_product_cancelled")


@pytest.mark.asyncio
async def test_stop_without_recovery_step_ends_session(store, strings):
    flow = build_flow_definition({
        "id": "no_menu",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "ask"}},
            "ask": {"type": "input", "message_key": "add_product_prompt", "context_key": "productInput", "next_step": "end"},
            "end": {"type": "terminal"},
        },
    })
    engine = FlowEngine(store, flow, strings)
    await engine.process(CHAT, text("hi"))

    result = await engine.process(CHAT, text("stop"))

    assert result.session_ended is True
    assert result.response == strings.get_string("add_product_cancelled")
    assert store.get(CHAT) is None


# --- Image input ---

@pytest.mark.asyncio
async def test_non_skip_text_on_image_step_is_rejected(engine, store, strings):
    await stage_complete_product(engine)

    result = await engine.process(CHAT, text("here you go"))

    assert result.response == strings.get_string("add_product_image_invalid")
    assert store.get(CHAT).current_step == "awaiting_product_image"


@pytest.mark.asyncio
async def test_skip_creates_product_without_image(engine, store, catalog, strings):
    await stage_complete_product(engine)

    result = await engine.process(CHAT, text("Skip"))

    catalog.create_product.assert_awaited_once()
    product_input = catalog.create_product.await_args.args[0]
    assert isinstance(product_input, CreateProductInput)
    assert product_input.name == "Widget"
    assert product_input.regular_price == "19.99"
    assert product_input.stock_quantity == 5
    assert product_input.images == []
    uuid.UUID(product_input.sku)

    assert result.pre_message == strings.render(
        "add_product_received", name="Widget", permalink="https://shop.example.com/product/widget"
    )
    assert result.buttons.body == strings.get_string("intent_prompt")
    session = store.get(CHAT)
    assert session.current_step == "awaiting_intent"
    assert "productData" not in session.context


@pytest.mark.asyncio
async def test_image_is_attached_to_created_product(engine, store, catalog, strings):
    await stage_complete_product(engine)

    result = await engine.process(CHAT, InboundMessage.image(IMAGE_URL, "image/jpeg"))

    product_input = catalog.create_product.await_args.args[0]
    assert product_input.images == [ProductImage(src=IMAGE_URL, name="Widget")]
    assert result.pre_message.startswith(strings.get_string("add_product_image_received") + "\n\n")
    assert "added successfully" in result.pre_message
    assert "productImage" not in store.get(CHAT).context


@pytest.mark.asyncio
async def test_image_before_non_action_step_acknowledges_and_prompts(store, strings):
    flow = build_flow_definition({
        "id": "photo",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "photo"}},
            "photo": {"type": "image_input", "message_key": "add_product_image_prompt",
                      "context_key": "productImage", "next_step": "caption", "optional": True, "skip_keyword": "skip"},
            "caption": {"type": "input", "message_key": "add_product_prompt", "context_key": "caption", "next_step": "end"},
            "end": {"type": "terminal"},
        },
    })
    engine = FlowEngine(store, flow, strings)
    await engine.process(CHAT, text("hi"))

    result = await engine.process(CHAT, InboundMessage.image(IMAGE_URL, "image/png"))

    assert result.response == (
        f"{strings.get_string('add_product_image_received')}\n\n{strings.get_string('add_product_prompt')}"
    )
    assert store.get(CHAT).context["productImage"] == {"url": IMAGE_URL, "mimeType": "image/png"}


@pytest.mark.asyncio
async def test_skip_before_non_action_step_reports_skipped(store, strings):
    flow = build_flow_definition({
        "id": "photo",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "photo"}},
            "photo": {"type": "image_input", "message_key": "add_product_image_prompt",
                      "context_key": "productImage", "next_step": "end", "optional": True, "skip_keyword": "skip"},
            "end": {"type": "terminal", "message_key": "goodbye"},
        },
    })
    engine = FlowEngine(store, flow, strings)
    await engine.process(CHAT, text("hi"))

    result = await engine.process(CHAT, text("skip"))

    assert result.session_ended is True
    assert result.response == f"{strings.get_string('add_product_image_skipped')}\n\n{strings.get_string('goodbye')}"


# --- Actions ---

@pytest.mark.asyncio
async def test_list_products_renders_numbered_list(engine, catalog, product_factory, strings):
    catalog.list_products.return_value = [
        product_factory(id=1, name="Mug", price="10", stock_status="instock"),
        product_factory(id=2, name="Tee", price="5.5", stock_status="outofstock"),
    ]
    await start_session(engine)

    result = await engine.process(CHAT, text("1"))

    catalog.list_products.assert_awaited_once_with(20)
    assert result.pre_message == "📦 *Products (2):*\n\n1. Mug - 10 (instock)\n2. Tee - 5.5 (outofstock)"
    assert result.buttons.body == strings.get_string("intent_prompt")
    assert result.buttons.header is None


@pytest.mark.asyncio
async def test_list_products_empty(engine, strings):
    await start_session(engine)

    result = await engine.process(CHAT, text("list"))

    assert result.pre_message == strings.get_string("list_products_empty")


@pytest.mark.asyncio
async def test_list_products_without_catalog(store, flow, strings):
    engine = FlowEngine(store, flow, strings, trigger_code="shop", catalog=None)
    await start_session(engine)

    result = await engine.process(CHAT, text("1"))

    assert result.pre_message == "[WooCommerce not configured]"
    assert store.get(CHAT).current_step == "awaiting_intent"


@pytest.mark.asyncio
async def test_list_products_catalog_error(engine, catalog, strings):
    catalog.list_products.side_effect = CatalogError("down", None, "network_error")
    await start_session(engine)

    result = await engine.process(CHAT, text("1"))

    assert result.pre_message == f"{strings.get_string('list_products_error')}\n\n{strings.get_string('error_network')}"


@pytest.mark.asyncio
@pytest.mark.parametrize("error_code,message_key", [
    ("duplicate_sku", "error_duplicate_sku"),
    ("unauthorized", "error_unauthorized"),
    ("image_upload_error", "error_image_upload"),
    ("server_error", "error_server"),
])
async def test_add_product_catalog_error_still_advances(engine, store, catalog, strings, error_code, message_key):
    catalog.create_product.side_effect = CatalogError("rejected", 400, error_code)
    await stage_complete_product(engine)

    result = await engine.process(CHAT, text("skip"))

    assert result.pre_message == f"{strings.get_string('add_product_error')}\n\n{strings.get_string(message_key)}"
    session = store.get(CHAT)
    assert session.current_step == "awaiting_intent"
    assert session.context["productData"]["name"] == "Widget"


@pytest.mark.asyncio
async def test_add_product_unexpected_error_maps_to_unknown(engine, catalog, strings):
    catalog.create_product.side_effect = RuntimeError("boom")
    await stage_complete_product(engine)

    result = await engine.process(CHAT, text("skip"))

    assert result.pre_message == f"{strings.get_string('add_product_error')}\n\n{strings.get_string('error_unknown')}"


@pytest.mark.asyncio
async def test_add_product_generates_sku_before_calling_catalog(engine, store, catalog):
    catalog.create_product.side_effect = CatalogError("rejected", 400, "invalid_data")
    await stage_complete_product(engine)

    await engine.process(CHAT, text("skip"))

    sent_sku = catalog.create_product.await_args.args[0].sku
    assert store.get(CHAT).context["productData"]["sku"] == sent_sku


@pytest.mark.asyncio
async def test_add_product_with_incomplete_data(store, strings, catalog):
    flow = build_flow_definition({
        "id": "direct",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "menu"}},
            "menu": {
                "type": "choice",
                "message_key": "intent_prompt",
                "options": [{"id": "go", "label": "Go"}],
                "transitions": {"go": {"next_step": "create"}},
                "on_invalid": {"message_key": "invalid_choice", "next_step": "menu"},
            },
            "create": {"type": "action", "action": "add_product", "next_step": "menu"},
        },
    })
    engine = FlowEngine(store, flow, strings, catalog=catalog)
    await engine.process(CHAT, text("hi"))

    result = await engine.process(CHAT, text("go"))

    assert result.pre_message == "[Product data incomplete]"
    catalog.create_product.assert_not_awaited()


# --- Chaining ---

def chained_actions_flow():
    return build_flow_definition({
        "id": "chain",
        "initial_step": "start",
        "steps": {
            "start": {"type": "trigger", "on_match": {"next_step": "menu"}},
            "menu": {
                "type": "choice",
                "message_key": "intent_prompt",
                "options": [{"id": "go", "label": "Go"}],
                "transitions": {"go": {"next_step": "a1"}},
                "on_invalid": {"message_key": "invalid_choice", "next_step": "menu"},
            },
            "a1": {"type": "action", "action": "list_products", "next_step": "a2"},
            "a2": {"type": "action", "action": "list_products", "next_step": "a3"},
            "a3": {"type": "action", "action": "list_products", "next_step": "a4"},
            "a4": {"type": "action", "action": "list_products", "next_step": "menu"},
        },
    })


@pytest.mark.asyncio
async def test_action_chain_is_bounded_and_resumes_next_turn(store, strings, catalog):
    engine = FlowEngine(store, chained_actions_flow(), strings, catalog=catalog, max_hops=3)
    await engine.process(CHAT, text("hi"))

    result = await engine.process(CHAT, text("go"))

    assert catalog.list_products.await_count == 3
    assert store.get(CHAT).current_step == "a4"
    assert result.handled is True
    assert result.buttons is None

    resumed = await engine.process(CHAT, text("anything"))

    assert catalog.list_products.await_count == 4
    assert store.get(CHAT).current_step == "menu"
    assert resumed.pre_message == strings.get_string("list_products_empty")


# --- Sessions ---

@pytest.mark.asyncio
async def test_expired_session_is_gone_and_new_trigger_starts_clean(engine, store, clock):
    await open_add_product(engine)
    await engine.process(CHAT, text("Name: Widget"))

    clock.advance(301)

    assert store.get(CHAT) is None
    not_handled = await engine.process(CHAT, text("Name: Gadget"))
    assert not_handled.handled is False

    await engine.process(CHAT, text("shop"))
    assert store.get(CHAT).context == {}


@pytest.mark.asyncio
async def test_activity_refreshes_expiry(engine, store, clock):
    await start_session(engine)

    clock.advance(200)
    await engine.process(CHAT, text("banana"))
    clock.advance(200)

    assert store.get(CHAT) is not None


@pytest.mark.asyncio
async def test_unknown_current_step_discards_session(engine, store):
    session = store.create_session(CHAT, "awaiting_intent")
    session.current_step = "no_such_step"
    store.set(CHAT, session)

    result = await engine.process(CHAT, text("1"))

    assert result.handled is False
    assert store.get(CHAT) is None


@pytest.mark.asyncio
async def test_turns_for_same_conversation_are_serialized(engine, catalog):
    active = 0
    peak = 0

    async def slow_list(limit):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return []

    catalog.list_products.side_effect = slow_list
    await start_session(engine)

    await asyncio.gather(engine.process(CHAT, text("1")), engine.process(CHAT, text("1")))

    assert catalog.list_products.await_count == 2
    assert peak == 1


@pytest.mark.asyncio
async def test_different_conversations_run_concurrently(engine, catalog):
    active = 0
    peak = 0

    async def slow_list(limit):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return []

    catalog.list_products.side_effect = slow_list
    for chat in ("a@c.us", "b@c.us"):
        await engine.process(chat, text("shop"))

    await asyncio.gather(engine.process("a@c.us", text("1")), engine.process("b@c.us", text("1")))

    assert peak == 2
