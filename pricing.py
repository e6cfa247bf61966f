import math
import re
from typing import Any, Iterable, Mapping, Optional

from schemas import DeliveryZone, NormalizedOrder, OrderQuote, OrderStatus, UnitSize

# -----------------------
# Fees and unit sizes
# -----------------------

DELIVERY_FEES = {
    DeliveryZone.INSIDE: 80.0,
    DeliveryZone.OUTSIDE: 120.0,
}

UNIT_FRACTIONS = {
    UnitSize.HALF: 0.5,
    UnitSize.WHOLE: 1.0,
}

# Ambiguous unit weights below this are kilograms, at or above it grams.
KG_THRESHOLD = 10

WEIGHT_LABEL_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(kg|g)?")

_BENGALI_DIGITS = str.maketrans("০১২৩৪৫৬৭৮৯", "0123456789")


def unit_fraction(unit_size: UnitSize) -> float:
    return UNIT_FRACTIONS[UnitSize(unit_size)]


def delivery_fee(zone: DeliveryZone) -> float:
    return DELIVERY_FEES[DeliveryZone(zone)]


def quote_order(price_per_unit: float, unit_size: UnitSize, quantity: int, zone: DeliveryZone) -> OrderQuote:
    """Derive unit price, totals, fee and weight for a checkout.

    No rounding happens here; callers format for display. Quantity must already
    be validated as >= 1.
    """
    fraction = unit_fraction(unit_size)
    unit_price = price_per_unit * fraction
    items_total = unit_price * quantity
    fee = delivery_fee(zone)
    return OrderQuote(
        unit_fraction=fraction,
        unit_price=unit_price,
        items_total=items_total,
        delivery_fee=fee,
        grand_total=items_total + fee,
        total_weight_kg=fraction * quantity,
    )


# -----------------------
# Coercion helpers
# -----------------------

def parse_price(value: Any) -> float:
    """Parse a stored price that may be text with Bengali digits or a currency sign."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else 0.0
    text = str(value).translate(_BENGALI_DIGITS)
    text = re.sub(r"[^\d.-]", "", text)
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_number(value: Any) -> Optional[float]:
    """Return `value` as a finite float, or None when it is absent or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def safe_float(value: Any, default: float = 0.0) -> float:
    number = to_number(value)
    return default if number is None else number


def _field(record: Mapping, *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _number_field(record: Mapping, *keys: str) -> Optional[float]:
    return to_number(_field(record, *keys))


def _quantity(record: Mapping) -> float:
    return safe_float(record.get("quantity"))


# -----------------------
# Legacy order records
# -----------------------

def _ambiguous_to_kg(value: float) -> float:
    return value if value < KG_THRESHOLD else value / 1000


def compute_order_weight_kg(record: Mapping) -> float:
    """Best-effort total weight in kg for a stored order of any vintage.

    Checked in order, first match wins:
      1. explicit per-item kg weight
      2. numeric unit weight, kg below 10 and grams from 10 up
      3. a label such as "500g", "1kg" or "0.5 kg" (unitless labels use rule 2)
      4. one kg per item
    """
    qty = _quantity(record)
    if qty <= 0:
        return 0.0

    per_item_kg = _number_field(record, "unit_weight_kg", "unitWeightKg")
    if per_item_kg is not None:
        return per_item_kg * qty

    unit_weight = _number_field(record, "unit_weight", "unitWeight")
    if unit_weight is not None and unit_weight > 0:
        return _ambiguous_to_kg(unit_weight) * qty

    label = _field(record, "weight_label", "weightLabel")
    if isinstance(label, str):
        match = WEIGHT_LABEL_RE.search(label.lower())
        if match:
            number = float(match.group(1).replace(",", "."))
            unit = match.group(2)
            if unit == "kg":
                return number * qty
            if unit == "g":
                return number / 1000 * qty
            return _ambiguous_to_kg(number) * qty

    return 1.0 * qty


def compute_order_total(record: Mapping) -> float:
    """Grand total of a stored order: stored total, else items + fee, else unit price * qty + fee."""
    grand_total = _number_field(record, "grand_total", "grandTotal")
    if grand_total is not None:
        return grand_total

    fee = safe_float(_field(record, "delivery_fee", "deliveryFee"))
    items_total = _number_field(record, "items_total", "itemsTotal")
    if items_total is not None:
        return items_total + fee

    unit = safe_float(_field(record, "unit_price", "unitPrice", "price"))
    return unit * _quantity(record) + fee


def normalize_order(doc: Mapping) -> NormalizedOrder:
    """Resolve a raw order document into a NormalizedOrder."""
    status = doc.get("status")
    if status not in (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value):
        status = OrderStatus.PENDING
    created_at = doc.get("created_at") or doc.get("createdAt")
    return NormalizedOrder(
        id=str(doc.get("_id", doc.get("id", ""))),
        product_id=_optional_str(_field(doc, "product_id", "productId")),
        product_title=str(_field(doc, "product_title", "productTitle") or ""),
        quantity=max(0, int(_quantity(doc))),
        unit_size=_optional_str(_field(doc, "unit_size", "unitSize")),
        unit_price=safe_float(_field(doc, "unit_price", "unitPrice", "price")),
        delivery_zone=_optional_str(_field(doc, "delivery_zone", "deliveryType")),
        delivery_fee=safe_float(_field(doc, "delivery_fee", "deliveryFee")),
        total_weight_kg=compute_order_weight_kg(doc),
        grand_total=compute_order_total(doc),
        name=str(doc.get("name") or ""),
        phone=str(doc.get("phone") or ""),
        address=str(doc.get("address") or ""),
        status=status,
        created_at=created_at if hasattr(created_at, "isoformat") else None,
    )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


# -----------------------
# Aggregates
# -----------------------

def order_aggregates(orders: Iterable[NormalizedOrder]) -> dict:
    orders = list(orders)
    return {
        "total_orders": len(orders),
        "total_quantity": sum(o.quantity for o in orders),
        "total_weight_kg": sum(o.total_weight_kg for o in orders),
        "total_revenue": sum(o.grand_total for o in orders),
    }


def dashboard_summary(orders: Iterable[NormalizedOrder], recent: int = 8) -> dict:
    orders = list(orders)
    return {
        "total_orders": len(orders),
        "pending": sum(1 for o in orders if o.status == OrderStatus.PENDING),
        "confirmed": sum(1 for o in orders if o.status == OrderStatus.CONFIRMED),
        "revenue_estimate": sum(o.grand_total for o in orders),
        "recent": orders[:recent],
    }


# -----------------------
# Display
# -----------------------

def format_money(amount: float) -> str:
    return f"{round(amount):,}"


def format_weight(kg: float) -> str:
    if kg >= 1:
        return f"{kg:.2f} kg"
    return f"{round(kg * 1000)} g"
