# /shopbot/utils/circuit_breaker.py

import asyncio
import time
import logging
from enum import Enum
from typing import Any, Callable

from shopbot.utils.errors import CircuitOpenError

logger = logging.getLogger(__name__)

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

class CircuitBreaker:
    """
    In-process circuit breaker for outbound HTTP calls. Only exceptions listed
    in ``tracked_exceptions`` count as failures, so a rejected request (4xx)
    does not open the circuit for a healthy backend.
    """

    def __init__(self, service_name: str, failure_threshold: int = 5, timeout: int = 60,
                 success_threshold: int = 3, tracked_exceptions: tuple = (Exception,)):
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.tracked_exceptions = tracked_exceptions
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: float | None = None
        self.state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

    async def call(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self.last_failure_time and (time.time() - self.last_failure_time > self.timeout):
                    self.state = CircuitState.HALF_OPEN
                    self.success_count = 0
                    logger.info(f"Circuit breaker is now HALF_OPEN for {self.service_name}")
                else:
                    logger.warning(f"Circuit breaker is OPEN. Call to {self.service_name} is blocked.")
                    raise CircuitOpenError(f"Circuit breaker is OPEN for {self.service_name}")
        try:
            result = await func(*args, **kwargs)
        except self.tracked_exceptions:
            await self._on_failure()
            raise
        await self._on_success()
        return result

    async def _on_success(self):
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    logger.info(f"Circuit breaker has been reset to CLOSED for {self.service_name}.")
            else:
                self.failure_count = 0

    async def _on_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = CircuitState.OPEN
                logger.error(f"Circuit breaker has OPENED for {self.service_name} due to {self.failure_count} failures.")
