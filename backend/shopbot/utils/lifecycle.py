# /shopbot/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from shopbot.config.settings import settings
from shopbot.services.greenapi_service import GreenApiService, MockSender
from shopbot.services.session_store import InMemorySessionStore
from shopbot.services.string_service import string_service
from shopbot.services.webhook_service import WebhookService
from shopbot.services.woocommerce_service import WooCommerceService
from shopbot.utils.logging import setup_logging
from shopbot.utils.tasks import sweep_expired_sessions
from shopbot.workflows.definitions import load_flow_definition
from shopbot.workflows.engine import FlowEngine

# This file manages the application's lifespan: it loads the messages and the
# flow (either failing is fatal), wires the engine to its collaborators,
# schedules the session sweep and closes HTTP clients on shutdown.

logger = logging.getLogger(__name__)


def build_sender():
    if settings.mock_mode:
        logger.warning("MOCK_MODE is enabled: outbound messages are logged, not sent.")
        return MockSender()
    return GreenApiService(settings.green_api_instance_id, settings.green_api_token, settings.green_api_base_url)


def build_catalog():
    if not settings.woocommerce_configured:
        logger.warning("WooCommerce is not configured; catalog actions will report it.")
        return None
    return WooCommerceService(
        settings.woocommerce_store_url,
        settings.woocommerce_consumer_key,
        settings.woocommerce_consumer_secret,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    logger.info("Application starting up...")

    string_service.load_strings(settings.messages_path)
    flow = load_flow_definition(settings.flow_definition_path)

    store = InMemorySessionStore(flow.session_timeout_seconds)
    sender = build_sender()
    catalog = build_catalog()
    engine = FlowEngine(
        store,
        flow,
        string_service,
        trigger_code=settings.trigger_code,
        catalog=catalog,
        list_limit=settings.catalog_list_limit,
    )

    app.state.session_store = store
    app.state.sender = sender
    app.state.webhook_service = WebhookService(engine, sender)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_expired_sessions,
        "interval",
        seconds=settings.session_sweep_interval_seconds,
        args=[store],
        id="session_sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Application startup complete. Flow '{flow.id}' ready, trigger code {'set' if settings.trigger_code else 'not set'}.")

    try:
        yield  # Application is now running
    finally:
        logger.info("Application shutting down...")
        scheduler.shutdown(wait=False)
        await sender.close()
        if catalog is not None:
            await catalog.close()
