"""
Defensive parsing for the two text inputs of a run: the SKU list CSV and the
supplier's product JSON. Nothing in here raises on bad data; malformed
values degrade to documented defaults and leave a warning in the log.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .schemas import SupplierRecord

logger = logging.getLogger(__name__)

DEFAULT_COST = "0.00"

# Largest decimal exponent accepted from the supplier (values below 1e16).
# Anything bigger is treated as garbage rather than a real count or price.
MAX_EXPONENT = 15


def parse_sku_list(text: str) -> list[str]:
    """
    Reads SKUs from the input CSV text.
    - The first line is a header and is skipped.
    - Blank lines are ignored.
    - The SKU is the first comma-delimited field of each remaining line.
    Duplicates are kept, in input order.
    """
    skus = []
    lines = text.splitlines()
    for line in lines[1:]:
        line = line.strip()
        if not line:
            continue
        sku = line.split(",")[0].strip()
        if sku:
            skus.append(sku)
    return skus


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Finite, bounded Decimal for a JSON number or numeric string, otherwise None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    elif not isinstance(value, (int, float, Decimal)):
        return None
    try:
        # Floats go through str() so 19.95 stays 19.95, not its binary expansion.
        number = Decimal(str(value) if isinstance(value, float) else value)
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or number.adjusted() > MAX_EXPONENT:
        return None
    return number


def parse_int(value: Any, default: int) -> int:
    """Integer view of a JSON value (e.g. pagination counters); `default` if unusable."""
    number = _to_decimal(value)
    if number is None:
        return default
    return int(number)


def parse_sku(value: Any) -> Optional[str]:
    """SKUs are opaque and case-sensitive; only surrounding whitespace is dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_stock_qty(value: Any, sku: str) -> int:
    """Parsed stock count, truncated toward zero. Defaults to 0."""
    if value is None:
        return 0
    number = _to_decimal(value)
    if number is None:
        logger.warning(
            f"⚠️ Invalid number format for 'stock_qty': {value!r} for SKU {sku}. Defaulting to 0."
        )
        return 0
    quantity = int(number)
    if quantity < 0:
        logger.warning(f"⚠️ Negative 'stock_qty' {value!r} for SKU {sku}. Defaulting to 0.")
        return 0
    return quantity


def parse_cost(value: Any, sku: str) -> str:
    """The supplier's cost string, kept verbatim when it is a valid number."""
    if value is None:
        return DEFAULT_COST
    if _to_decimal(value) is None:
        logger.warning(
            f"⚠️ Invalid number format for 'cost': {value!r} for SKU {sku}. Defaulting to {DEFAULT_COST}."
        )
        return DEFAULT_COST
    return value.strip() if isinstance(value, str) else str(value)


def parse_price(value: Any, sku: str) -> Optional[Decimal]:
    if value is None:
        return None
    number = _to_decimal(value)
    if number is None or number < 0:
        logger.warning(
            f"⚠️ Invalid number format for 'price': {value!r} for SKU {sku}. No selling price."
        )
        return None
    return number


def parse_supplier_item(item: Any) -> Optional[SupplierRecord]:
    """
    Maps one entry of the products `result` array onto a SupplierRecord.
    Returns None (and the entry is dropped entirely) when it is not an object
    or carries no usable SKU.
    """
    if not isinstance(item, dict):
        logger.warning(f"⚠️ Skipping non-object product entry: {str(item)[:200]}")
        return None

    sku = parse_sku(item.get("sku"))
    if sku is None:
        logger.warning(f"⚠️ Skipping product entry without a usable SKU: {str(item)[:200]}")
        return None

    return SupplierRecord(
        sku=sku,
        stock_qty=parse_stock_qty(item.get("stock_qty"), sku),
        cost=parse_cost(item.get("cost"), sku),
        price=parse_price(item.get("price"), sku),
    )
