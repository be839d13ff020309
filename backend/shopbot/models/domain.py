# /shopbot/models/domain.py

import re
import html
import logging
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

# This file defines the core Pydantic models used by the catalog client and
# the product-input steps. These models ensure data consistency and provide
# validation.

logger = logging.getLogger(__name__)


class Product(BaseModel):
    id: int
    name: str
    slug: str = ""
    permalink: str = ""
    price: str = ""
    regular_price: str = ""
    stock_status: str = ""
    stock_quantity: Optional[int] = None
    status: str = ""
    description: str = ""
    sku: str = ""

    @classmethod
    def from_woocommerce_api(cls, product_data: Dict[str, Any]) -> Optional["Product"]:
        """
        A factory method to create a Product instance from a raw WooCommerce REST
        dictionary. Malformed entries are logged and skipped rather than failing
        a whole listing.
        """
        try:
            raw_description = product_data.get("description") or ""
            clean_description = html.unescape(re.sub("<[^<]+?>", "", raw_description)).strip()

            return cls(
                id=int(product_data["id"]),
                name=product_data.get("name") or "No Name",
                slug=product_data.get("slug") or "",
                permalink=product_data.get("permalink") or "",
                price=str(product_data.get("price") or ""),
                regular_price=str(product_data.get("regular_price") or ""),
                stock_status=product_data.get("stock_status") or "",
                stock_quantity=product_data.get("stock_quantity"),
                status=product_data.get("status") or "",
                description=clean_description,
                sku=product_data.get("sku") or "",
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Could not parse product with ID {product_data.get('id')}: {e}")
            return None


class ProductImage(BaseModel):
    src: str
    name: Optional[str] = None


class CreateProductInput(BaseModel):
    name: str
    regular_price: str
    stock_quantity: int
    description: Optional[str] = None
    sku: str
    images: List[ProductImage] = Field(default_factory=list)


class StagedProduct(BaseModel):
    """
    A product being collected over several messages. Every field is optional
    until the record is complete; ``sku`` is generated just before creation.
    """
    name: Optional[str] = None
    price: Optional[float] = None
    stock: Optional[int] = None
    description: Optional[str] = None
    sku: Optional[str] = None

    @classmethod
    def from_context(cls, data: Any) -> "StagedProduct":
        if isinstance(data, dict):
            return cls.model_validate(data)
        return cls()

    def to_context(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StagedImage(BaseModel):
    url: str
    mime_type: Optional[str] = Field(default=None, alias="mimeType")

    model_config = {"populate_by_name": True}
