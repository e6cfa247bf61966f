"""
Database Schemas for the Storefront

Each Pydantic model either mirrors a MongoDB collection document
("products", "orders", "admin") or a request/response payload of the API.

Products quote their price per kilogram; orders capture a snapshot of the
product title and unit economics at checkout time, so later product edits
never change a historical order.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator


# -----------
# Enumerations
# -----------

class UnitSize(str, Enum):
    HALF = "500g"
    WHOLE = "1kg"


class DeliveryZone(str, Enum):
    INSIDE = "inside"
    OUTSIDE = "outside"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


def _split_images(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return [str(s).strip() for s in value if str(s).strip()]


# -----------------
# Core Collections
# -----------------

class Product(BaseModel):
    title: str = Field(..., description="Product name")
    description: str = Field("", description="Marketing description")
    price: float = Field(..., ge=0, description="Price per kilogram")
    regular_price: Optional[float] = Field(None, ge=0, description="Original price shown struck through")
    images: List[str] = Field(default_factory=list, description="Image URLs, first one is the cover")
    category: Optional[str] = Field(None, description="Category label")
    slug: Optional[str] = Field(None, description="URL-friendly identifier, unique across products")

    @field_validator("images", mode="before")
    @classmethod
    def split_images(cls, value):
        return _split_images(value)


class Order(BaseModel):
    product_id: Optional[str] = Field(None, description="Referenced product _id (string)")
    product_title: str = Field("", description="Product title snapshot")
    price_per_unit: float = Field(..., ge=0, description="Price per kg at time of order")
    unit_size: UnitSize
    unit_weight_grams: float
    unit_weight_kg: float
    unit_price: float
    quantity: int = Field(..., ge=1)
    total_weight_kg: float
    items_total: float
    delivery_zone: DeliveryZone
    delivery_fee: float
    grand_total: float
    name: str
    phone: str
    address: str
    status: OrderStatus = OrderStatus.PENDING


class OrderQuote(BaseModel):
    unit_fraction: float
    unit_price: float
    items_total: float
    delivery_fee: float
    grand_total: float
    total_weight_kg: float


class NormalizedOrder(BaseModel):
    """An order record with every derived field resolved, whatever shape it was stored in."""

    id: str
    product_id: Optional[str] = None
    product_title: str = ""
    quantity: int = 0
    unit_size: Optional[str] = None
    unit_price: float = 0.0
    delivery_zone: Optional[str] = None
    delivery_fee: float = 0.0
    total_weight_kg: float = 0.0
    grand_total: float = 0.0
    name: str = ""
    phone: str = ""
    address: str = ""
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[datetime] = None


# ----------------
# Request payloads
# ----------------

class ProductCreate(BaseModel):
    title: str = ""
    description: str = ""
    price: Optional[Union[float, str]] = None
    regular_price: Optional[Union[float, str]] = None
    images: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    slug: str = ""

    @field_validator("images", mode="before")
    @classmethod
    def split_images(cls, value):
        return _split_images(value)


class ProductUpdate(BaseModel):
    """Partial product edit. Only the fields present in the request body are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Union[float, str]] = None
    regular_price: Optional[Union[float, str]] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None

    @field_validator("images", mode="before")
    @classmethod
    def split_images(cls, value):
        return None if value is None else _split_images(value)


class QuoteRequest(BaseModel):
    product_id: Optional[str] = None
    price_per_unit: Optional[float] = Field(None, ge=0)
    unit_size: UnitSize = UnitSize.HALF
    quantity: int = Field(1, ge=1)
    delivery_zone: DeliveryZone = DeliveryZone.INSIDE


class CheckoutRequest(BaseModel):
    product_id: str
    quantity: int = 1
    unit_size: UnitSize = UnitSize.HALF
    delivery_zone: DeliveryZone = DeliveryZone.INSIDE
    name: str = ""
    phone: str = ""
    address: str = ""


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class BulkRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


# -------------
# Batch results
# -------------

class BatchItemResult(BaseModel):
    id: str
    status: str = Field(..., description="ok, failed or skipped")
    error: Optional[str] = None


class BatchResult(BaseModel):
    items: List[BatchItemResult] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="The one failure that stopped the batch, if any")

    @property
    def succeeded(self) -> List[str]:
        return [i.id for i in self.items if i.status == "ok"]

    @property
    def ok(self) -> bool:
        return self.error is None

    def counts(self) -> Dict[str, int]:
        out = {"ok": 0, "failed": 0, "skipped": 0}
        for item in self.items:
            out[item.status] += 1
        return out
