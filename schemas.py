"""
Request and response schemas for the storefront API.

The JSON wire format is camelCase (``userId``, ``paymentMethod``); stored
documents use the snake_case field names. Every model accepts either form.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

OrderStatus = Literal["pending", "processing", "shipped", "delivered"]
PaymentMethod = Literal["paypal", "cash_on_delivery"]
PaymentStatus = Literal["pending", "completed", "failed"]
Role = Literal["admin", "customer"]

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered")


def coerce_quantity(value: Any) -> int:
    """Coerce a requested quantity to a positive int, defaulting to 1."""
    if isinstance(value, bool):
        return 1
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if math.isnan(number) or math.isinf(number):
        return 1
    quantity = int(number)
    return quantity if quantity > 0 else 1


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Orders ---


class LineItem(Schema):
    product_id: str
    quantity: int = 1

    @field_validator("product_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        if v is None:
            raise ValueError("productId is required")
        return str(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v):
        return coerce_quantity(v)


class ShippingAddress(Schema):
    full_name: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class OrderRequest(Schema):
    user_id: Optional[str] = None
    products: Optional[List[LineItem]] = None
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    payment_details: Optional[Dict[str, Any]] = None
    status: Optional[OrderStatus] = None
    total: Optional[float] = Field(None, ge=0)

    @field_validator("user_id", mode="before")
    @classmethod
    def _stringify_user(cls, v):
        return None if v is None else str(v)


class StatusUpdate(Schema):
    # Checked against ORDER_STATUSES by the order service, not here
    status: Optional[Any] = None


class Order(Schema):
    id: str
    user_id: str
    products: List[LineItem]
    status: OrderStatus = "pending"
    total: float
    shipping_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod = "cash_on_delivery"
    payment_status: PaymentStatus = "pending"
    payment_details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StockUpdate(Schema):
    product_id: str
    success: bool
    previous_stock: Optional[int] = None
    new_stock: Optional[int] = None
    error: Optional[str] = None


class OrderCreated(Schema):
    success: bool = True
    message: str
    order: Order
    stock_updates: List[StockUpdate]


# --- Catalog ---


class GalleryImage(Schema):
    url: Optional[str] = None
    cid: Optional[str] = None


class ProductPayload(Schema):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    image: Optional[str] = None
    image_cid: Optional[str] = None
    gallery: Optional[List[GalleryImage]] = None
    stock: Optional[int] = Field(None, ge=0)


class Review(Schema):
    id: str
    product_id: str
    user_id: str
    user_name: str
    rating: float
    comment: str
    verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Product(Schema):
    id: str
    name: str
    description: str = ""
    price: float = Field(0, ge=0)
    category: str = ""
    image: str = ""
    image_cid: Optional[str] = None
    gallery: Optional[List[GalleryImage]] = None
    stock: int = Field(0, ge=0)
    reviews: Optional[List[Review]] = None
    average_rating: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StockInfo(Schema):
    id: str
    stock: int
    available: bool


class ReviewPayload(Schema):
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    rating: Optional[Any] = None
    comment: Optional[str] = None


class CategoryPayload(Schema):
    name: Optional[str] = None
    description: Optional[str] = None
    slug: Optional[str] = None
    is_active: Optional[bool] = None


class Category(Schema):
    id: str
    name: str
    description: str = ""
    slug: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Accounts ---


class UserCreate(Schema):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Role = "customer"


class UserUpdate(Schema):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    password: Optional[str] = None


class User(Schema):
    id: str
    name: str
    email: str
    role: Role = "customer"
    clerk_id: Optional[str] = None


class LoginRequest(Schema):
    email: EmailStr
    password: str


class TokenResponse(Schema):
    token: str
    name: str
    email: str
    role: Role


class SyncReport(Schema):
    total: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0
    details: List[str] = []


# --- Envelopes ---


class BestSellers(Schema):
    products: List[Product]
    timestamp: datetime


class ReviewList(Schema):
    reviews: List[Review]
    count: int
    average_rating: float


class ReviewCreated(Schema):
    message: str
    review: Review
