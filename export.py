import csv
import io
from typing import Any, Iterable, List, Mapping

ORDER_COLUMNS = [
    "id", "product_title", "quantity", "total_weight_kg", "unit_price",
    "grand_total", "name", "phone", "address", "status", "created_at",
]

PRODUCT_COLUMNS = ["id", "title", "price", "regular_price", "images", "category"]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "|".join(str(v) for v in value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def to_csv(rows: Iterable[Mapping[str, Any]], columns: List[str]) -> str:
    """Header line plus one line per row, every field quoted and inner quotes doubled."""
    buf = io.StringIO()
    buf.write(",".join(columns) + "\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow([_cell(row.get(c)) for c in columns])
    return buf.getvalue()


def orders_csv(orders: Iterable[Any]) -> str:
    return to_csv((o.model_dump(mode="json") for o in orders), ORDER_COLUMNS)


def products_csv(products: Iterable[Mapping[str, Any]]) -> str:
    return to_csv(products, PRODUCT_COLUMNS)
