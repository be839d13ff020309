# /shopbot/utils/tasks.py

import logging

from shopbot.services.session_store import InMemorySessionStore
from shopbot.utils.metrics import active_sessions_gauge

logger = logging.getLogger(__name__)

async def sweep_expired_sessions(store: InMemorySessionStore) -> int:
    """
    A scheduled task that drops expired sessions so idle conversations do not
    hold memory until their next message arrives.
    """
    try:
        removed = store.sweep_expired()
    except Exception:
        logger.error("An error occurred during the scheduled session sweep.", exc_info=True)
        return 0

    active_sessions_gauge.set(len(store))
    if removed:
        logger.info(f"Session sweep removed {removed} expired sessions, {len(store)} remain.")
    return removed
