# /shopbot/utils/errors.py

from typing import Optional

# Exceptions shared across the service. Configuration errors are raised at
# startup and stop the process; collaborator errors are caught by the flow
# engine and turned into user-facing messages.

CATALOG_ERROR_CODES = (
    "network_error",
    "unauthorized",
    "forbidden",
    "not_found",
    "duplicate_sku",
    "invalid_data",
    "image_upload_error",
    "server_error",
    "unknown",
)


class FlowConfigError(Exception):
    """Raised when a flow definition cannot be loaded or references unknown steps."""

    def __init__(self, message: str, step_id: Optional[str] = None):
        super().__init__(message)
        self.step_id = step_id


class MessagesError(Exception):
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class CatalogError(Exception):
    """A failed call to the product catalog, classified by ``error_code``."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: str = "unknown"):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code if error_code in CATALOG_ERROR_CODES else "unknown"


class SenderError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WebhookError(Exception):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class CircuitOpenError(Exception):
    pass
