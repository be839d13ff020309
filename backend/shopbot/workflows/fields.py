# /shopbot/workflows/fields.py

"""
Parsing and validation of the multi-line product input.

Users answer the add-product prompt with ``Key: value`` lines, possibly over
several messages. Fields are merged monotonically into a ``StagedProduct``:
a field only changes when a message supplies a valid value for it, and an
invalid value is reported without discarding what was accepted before.
"""

import math
import re
from typing import Dict, List, TypedDict

from shopbot.models.domain import StagedProduct

REQUIRED_FIELDS = ("name", "price", "stock")
STOCK_KEYS = ("stock", "quantity")

# Plain ASCII decimals only: no exponents, digit separators or other scripts.
PRICE_PATTERN = re.compile(r"\+?(\d+(\.\d*)?|\.\d+)", re.ASCII)
STOCK_PATTERN = re.compile(r"\+?\d+", re.ASCII)

MISSING_FIELD_EXAMPLES = {
    "name": "Name: Product Name",
    "price": "Price: 29.99",
    "stock": "Stock: 10",
}


class MergeResult(TypedDict):
    product: StagedProduct
    errors: List[str]


def parse_fields(text: str) -> Dict[str, str]:
    """
    Splits a free-text block into ``{key: value}``.

    Each line is split on its first colon; the key is stripped and lower-cased,
    the value stripped. Lines without a colon or with an empty value are
    dropped, and a later line wins over an earlier one with the same key.
    """
    fields: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key and value:
            fields[key] = value
    return fields


def parse_price(value: str):
    if not PRICE_PATTERN.fullmatch(value):
        return None
    try:
        price = float(value)
    except ValueError:
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def parse_stock(value: str):
    if not STOCK_PATTERN.fullmatch(value):
        return None
    return int(value)


def format_price(price: float) -> str:
    """19.99 -> '19.99', 10.0 -> '10', 9.5 -> '9.5'"""
    return f"{price:.2f}".rstrip("0").rstrip(".")


def merge_and_validate(existing: StagedProduct, new_fields: Dict[str, str], strings) -> MergeResult:
    """Merges parsed fields into a copy of ``existing``, collecting one error per rejected field."""
    product = existing.model_copy()
    errors: List[str] = []

    if "name" in new_fields:
        name = new_fields["name"].strip()
        if name:
            product.name = name
        else:
            errors.append(strings.get_string("validation_error_name"))

    if "price" in new_fields:
        price = parse_price(new_fields["price"])
        if price is not None:
            product.price = price
        else:
            errors.append(strings.get_string("validation_error_price"))

    stock_key = next((key for key in STOCK_KEYS if key in new_fields), None)
    if stock_key:
        stock = parse_stock(new_fields[stock_key])
        if stock is not None:
            product.stock = stock
        else:
            errors.append(strings.get_string("validation_error_stock"))

    if "description" in new_fields:
        product.description = new_fields["description"]

    return {"product": product, "errors": errors}


def is_complete(product: StagedProduct) -> bool:
    return all(getattr(product, name) is not None for name in REQUIRED_FIELDS)


def missing_fields(product: StagedProduct) -> List[str]:
    return [name for name in REQUIRED_FIELDS if getattr(product, name) is None]


def build_missing_fields_prompt(product: StagedProduct, errors: List[str], strings) -> str:
    """Errors first, then what we already have, then what is still needed."""
    parts: List[str] = []

    if errors:
        parts.append("⚠️ " + "\n⚠️ ".join(errors))

    current_values: List[str] = []
    if product.name:
        current_values.append(f"✓ Name: {product.name}")
    if product.price is not None:
        current_values.append(f"✓ Price: {format_price(product.price)}")
    if product.stock is not None:
        current_values.append(f"✓ Stock: {product.stock}")
    if product.description:
        current_values.append(f"✓ Description: {product.description}")
    if current_values:
        parts.append(strings.render("add_product_current_values", current_values="\n".join(current_values)))

    missing = [MISSING_FIELD_EXAMPLES[name] for name in missing_fields(product)]
    if missing:
        parts.append(strings.render("add_product_missing_fields", missing_fields="\n".join(missing)))

    return "\n\n".join(parts)
