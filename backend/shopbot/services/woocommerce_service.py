# /shopbot/services/woocommerce_service.py

import json
import httpx
import logging
import tenacity
from typing import Any, Dict, List, Optional, Protocol

from shopbot.models.domain import CreateProductInput, Product
from shopbot.utils.circuit_breaker import CircuitBreaker
from shopbot.utils.errors import CatalogError, CircuitOpenError
from shopbot.utils.metrics import catalog_requests_counter

logger = logging.getLogger(__name__)

INVALID_DATA_CODES = {"rest_invalid_param", "woocommerce_rest_invalid_product"}
IMAGE_UPLOAD_CODES = {"woocommerce_product_image_upload_error", "woocommerce_product_invalid_image_id"}


class CatalogClient(Protocol):
    """What the flow engine needs from a product catalog."""

    async def list_products(self, limit: int = 20) -> List[Product]: ...

    async def create_product(self, product_input: CreateProductInput) -> Product: ...


def classify_error(status_code: int, body: str) -> str:
    """Maps a failed WooCommerce response to one of the catalog error codes."""
    if status_code == 401:
        return "unauthorized"
    if status_code == 403:
        return "forbidden"
    if status_code == 404:
        return "not_found"
    if status_code >= 500:
        return "server_error"

    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        code = parsed.get("code") or ""
        message = parsed.get("message") or ""
        if code == "product_invalid_sku" or "SKU" in message:
            return "duplicate_sku"
        if code in IMAGE_UPLOAD_CODES or "image" in message.lower():
            return "image_upload_error"
        if code in INVALID_DATA_CODES:
            return "invalid_data"

    if status_code == 400:
        return "invalid_data"
    return "unknown"


def build_api_error(status_code: int, body: str, operation: str) -> CatalogError:
    try:
        parsed = json.loads(body)
        message = parsed.get("message") if isinstance(parsed, dict) else None
    except ValueError:
        message = None
    return CatalogError(message or f"{operation} failed", status_code, classify_error(status_code, body))


class WooCommerceService:
    def __init__(self, store_url: str, consumer_key: str, consumer_secret: str,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.store_url = store_url.rstrip("/")
        self.api_url = f"{self.store_url}/wp-json/wc/v3"
        self.auth = httpx.BasicAuth(consumer_key, consumer_secret)
        self.circuit_breaker = CircuitBreaker("woocommerce", tracked_exceptions=(httpx.RequestError,))
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=30.0, connect=5.0)
        )

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.circuit_breaker.call(func, *args, **kwargs)

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Any:
        """
        Sends one request and returns the decoded JSON body. Reads are retried on
        transport errors; writes are sent once since they are not idempotent.
        Every failure is raised as a CatalogError.
        """
        url = f"{self.api_url}{path}"
        try:
            if method == "GET":
                response = await self.resilient_api_call(self.http_client.get, url, auth=self.auth, **kwargs)
            else:
                response = await self.circuit_breaker.call(self.http_client.post, url, auth=self.auth, **kwargs)
        except CircuitOpenError as e:
            catalog_requests_counter.labels(operation=operation, status="network_error").inc()
            raise CatalogError(f"Store temporarily unavailable while {operation}", None, "network_error") from e
        except httpx.RequestError as e:
            logger.error(f"woocommerce_network_error during {operation}: {e}")
            catalog_requests_counter.labels(operation=operation, status="network_error").inc()
            raise CatalogError(f"Network error while {operation}", None, "network_error") from e

        if response.status_code >= 400:
            body = response.text
            logger.error(f"woocommerce_api_error during {operation}: {response.status_code} - {body[:500]}")
            error = build_api_error(response.status_code, body, operation)
            catalog_requests_counter.labels(operation=operation, status=error.error_code).inc()
            raise error

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"woocommerce_json_parse_error during {operation}: {e}")
            catalog_requests_counter.labels(operation=operation, status="unknown").inc()
            raise CatalogError("Failed to parse WooCommerce response", None, "unknown") from e

        catalog_requests_counter.labels(operation=operation, status="success").inc()
        return data

    # --- Product Lookups ---

    async def list_products(self, limit: int = 20) -> List[Product]:
        """Fetches up to ``limit`` products."""
        logger.info(f"Fetching up to {limit} products from WooCommerce.")
        data = await self._request("GET", "/products", "fetching products", params={"per_page": limit})
        products = [p for p in (Product.from_woocommerce_api(item) for item in data or []) if p]
        logger.info(f"Fetched {len(products)} products from WooCommerce.")
        return products

    async def get_product_by_sku(self, sku: str) -> Optional[Product]:
        data = await self._request("GET", "/products", "fetching product by SKU", params={"sku": sku})
        if not data:
            logger.info(f"No WooCommerce product found for SKU {sku}.")
            return None
        return Product.from_woocommerce_api(data[0])

    # --- Product Creation ---

    async def create_product(self, product_input: CreateProductInput) -> Product:
        """Creates a simple product with managed stock and an optional image."""
        body: Dict[str, Any] = {
            "name": product_input.name,
            "type": "simple",
            "regular_price": product_input.regular_price,
            "description": product_input.description or "",
            "manage_stock": True,
            "stock_quantity": product_input.stock_quantity,
            "sku": product_input.sku,
        }
        if product_input.images:
            body["images"] = [image.model_dump(exclude_none=True) for image in product_input.images]

        logger.info(f"Creating WooCommerce product '{product_input.name}' (sku={product_input.sku}).")
        data = await self._request("POST", "/products", "creating product", json=body)

        product = Product.from_woocommerce_api(data) if isinstance(data, dict) else None
        if product is None:
            raise CatalogError("WooCommerce returned an unexpected product payload", None, "unknown")
        logger.info(f"Created WooCommerce product {product.id} (sku={product.sku}).")
        return product

    async def close(self):
        await self.http_client.aclose()
