from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .validation import (
    INDIAN_PHONE_RE,
    NAME_RE,
    PINCODE_RE,
    is_valid_email,
    password_problems,
    sanitize_input,
)


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed")
PAYMENT_METHODS = ("cod", "upi")


def _email(v: str) -> str:
    e = (v or "").strip().lower()
    if not e:
        raise ValueError("Email is required")
    if len(e) > 255 or not is_valid_email(e):
        raise ValueError("Invalid email address")
    return e


def _person_name(v: str) -> str:
    n = (v or "").strip()
    if len(n) < 2:
        raise ValueError("Name must be at least 2 characters")
    if len(n) > 100:
        raise ValueError("Name is too long")
    if not NAME_RE.match(n):
        raise ValueError("Name contains invalid characters")
    return n


def _phone(v: str) -> str:
    p = (v or "").strip()
    if not INDIAN_PHONE_RE.match(p):
        raise ValueError("Invalid phone number (must be 10 digits starting with 6-9)")
    return p


def _pincode(v: str) -> str:
    p = (v or "").strip()
    if not PINCODE_RE.match(p):
        raise ValueError("Pincode must be exactly 6 digits")
    return p


def _bounded(v: str, label: str, lo: int, hi: int) -> str:
    s = sanitize_input(v or "")
    if len(s) < lo:
        raise ValueError(f"{label} must be at least {lo} characters")
    if len(s) > hi:
        raise ValueError(f"{label} is too long")
    return s


# --------------------------------------------------------------------------------------
# Catalog
# --------------------------------------------------------------------------------------


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: str
    size: str
    condition: str
    price: float
    original_price: Optional[float] = None
    images: List[str] = Field(default_factory=list)
    measurements: Optional[Dict[str, Any]] = None
    status: str = "available"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CatalogOut(BaseModel):
    available: List[ProductOut]
    sold: List[ProductOut]
    total: int


class ProductIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: str
    size: str
    condition: str
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    images: List[str] = Field(default_factory=list, max_length=10)
    measurements: Optional[Dict[str, str]] = None
    status: str = "available"

    @field_validator("name")
    @classmethod
    def _trim_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("description")
    @classmethod
    def _trim_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None


class ProductUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: Optional[str] = None
    size: Optional[str] = None
    condition: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    images: Optional[List[str]] = Field(default=None, max_length=10)
    measurements: Optional[Dict[str, str]] = None
    status: Optional[str] = None

    @field_validator("name", "description")
    @classmethod
    def _trim(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None


class ImageUploadOut(BaseModel):
    urls: List[str]
    rejected: List[Dict[str, str]] = Field(default_factory=list)


# --------------------------------------------------------------------------------------
# Cart
# --------------------------------------------------------------------------------------


class CartValidateIn(BaseModel):
    items: List[Any] = Field(default_factory=list, max_length=200)


class CartValidateOut(BaseModel):
    items: List[Dict[str, Any]]
    removed: List[str]
    repriced: List[str]
    item_count: int
    subtotal: float
    shipping: float
    total: float


# --------------------------------------------------------------------------------------
# Checkout / orders
# --------------------------------------------------------------------------------------


class CheckoutIn(BaseModel):
    name: str
    email: str
    phone: str
    street: str
    city: str
    state: str
    pincode: str
    payment_method: str = "upi"
    product_ids: List[str] = Field(min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def _v_name(cls, v: str) -> str:
        return _person_name(v)

    @field_validator("email")
    @classmethod
    def _v_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("phone")
    @classmethod
    def _v_phone(cls, v: str) -> str:
        return _phone(v)

    @field_validator("street")
    @classmethod
    def _v_street(cls, v: str) -> str:
        return _bounded(v, "Street address", 5, 200)

    @field_validator("city")
    @classmethod
    def _v_city(cls, v: str) -> str:
        return _bounded(v, "City", 2, 100)

    @field_validator("state")
    @classmethod
    def _v_state(cls, v: str) -> str:
        return _bounded(v, "State", 2, 100)

    @field_validator("pincode")
    @classmethod
    def _v_pincode(cls, v: str) -> str:
        return _pincode(v)

    @field_validator("payment_method")
    @classmethod
    def _v_method(cls, v: str) -> str:
        m = (v or "").strip().lower()
        if m not in PAYMENT_METHODS:
            raise ValueError("Payment method must be cod or upi")
        return m

    @field_validator("product_ids")
    @classmethod
    def _v_products(cls, v: List[str]) -> List[str]:
        seen: List[str] = []
        for pid in v:
            if pid not in seen:
                seen.append(pid)
        return seen


class OrderItemOut(BaseModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    product_price: float
    product_size: str
    product_image: Optional[str] = None


class OrderOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    customer_email: str
    shipping_name: str
    shipping_phone: str
    shipping_street: str
    shipping_city: str
    shipping_state: str
    shipping_pincode: str
    payment_method: str
    payment_status: str
    subtotal: float
    shipping: float
    total: float
    status: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    items: List[OrderItemOut] = Field(default_factory=list)
    item_count: Optional[int] = None


class OrderCreatedOut(BaseModel):
    order: OrderOut
    product_ids: List[str]
    next_action: str


class GuestOrderLookupIn(BaseModel):
    customer_email: str
    order_id: str

    @field_validator("customer_email")
    @classmethod
    def _v_email(cls, v: str) -> str:
        return _email(v)


class GuestOrderOut(BaseModel):
    id: str
    status: str
    payment_status: str
    total_amount: float
    created_at: Optional[str] = None


class OrderStatusIn(BaseModel):
    status: str


# --------------------------------------------------------------------------------------
# Addresses
# --------------------------------------------------------------------------------------


class AddressIn(BaseModel):
    name: str
    phone: str
    street: str
    city: str
    state: str
    pincode: str
    is_default: bool = False

    @field_validator("name")
    @classmethod
    def _v_name(cls, v: str) -> str:
        return _person_name(v)

    @field_validator("phone")
    @classmethod
    def _v_phone(cls, v: str) -> str:
        return _phone(v)

    @field_validator("street")
    @classmethod
    def _v_street(cls, v: str) -> str:
        return _bounded(v, "Street address", 5, 200)

    @field_validator("city", "state")
    @classmethod
    def _v_place(cls, v: str) -> str:
        s = _bounded(v, "Value", 2, 100)
        if not NAME_RE.match(s):
            raise ValueError("Contains invalid characters")
        return s

    @field_validator("pincode")
    @classmethod
    def _v_pincode(cls, v: str) -> str:
        return _pincode(v)


class AddressOut(BaseModel):
    id: str
    name: str
    phone: str
    street: str
    city: str
    state: str
    pincode: str
    is_default: bool
    created_at: Optional[str] = None


# --------------------------------------------------------------------------------------
# Auth
# --------------------------------------------------------------------------------------


class SignUpIn(BaseModel):
    email: str
    password: str
    name: str

    @field_validator("email")
    @classmethod
    def _v_email(cls, v: str) -> str:
        return _email(v)

    @field_validator("password")
    @classmethod
    def _v_password(cls, v: str) -> str:
        problems = password_problems(v)
        if problems:
            raise ValueError(problems[0])
        return v

    @field_validator("name")
    @classmethod
    def _v_name(cls, v: str) -> str:
        return _person_name(v)


class SignInIn(BaseModel):
    email: str
    password: str = Field(min_length=1)
    redirect: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _v_email(cls, v: str) -> str:
        return _email(v)


class GoogleSignInIn(BaseModel):
    id_token: str = Field(min_length=10)
    redirect: Optional[str] = None


class AuthTokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in_seconds: int
    csrf_token: str
    user_id: str
    email: str
    role: str
    redirect_to: str = "/"


class AuthMeOut(BaseModel):
    user_id: str
    email: str
    role: str
    name: Optional[str] = None


class ProfileOut(BaseModel):
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None


class ProfileUpdateIn(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _v_name(cls, v: Optional[str]) -> Optional[str]:
        return _person_name(v) if v is not None else None

    @field_validator("phone")
    @classmethod
    def _v_phone(cls, v: Optional[str]) -> Optional[str]:
        return _phone(v) if v is not None else None


class PasswordChangeIn(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=128)


class HasRoleOut(BaseModel):
    role: str
    has_role: bool


# --------------------------------------------------------------------------------------
# Admin
# --------------------------------------------------------------------------------------


class DashboardOut(BaseModel):
    total_products: int
    active_orders: int
    today_revenue: float
    month_revenue: float
    recent_orders: List[OrderOut]


class UserWithRoleOut(BaseModel):
    user_id: str
    email: str
    name: str
    role: str


class PromoteAdminIn(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _v_email(cls, v: str) -> str:
        return _email(v)


class StoreSettingsOut(BaseModel):
    id: str
    store_name: str
    contact_email: str
    contact_phone: str
    shipping_charge: float
    free_shipping_threshold: float
    new_order_notifications: bool
    low_stock_alerts: bool
    customer_messages: bool
    updated_at: Optional[str] = None


class StoreSettingsIn(BaseModel):
    store_name: str = Field(min_length=1, max_length=100)
    contact_email: str = Field(default="", max_length=255)
    contact_phone: str = Field(default="", max_length=30)
    shipping_charge: float = Field(ge=0)
    free_shipping_threshold: float = Field(ge=0)
    new_order_notifications: bool = True
    low_stock_alerts: bool = True
    customer_messages: bool = True

    @field_validator("contact_email")
    @classmethod
    def _v_email(cls, v: str) -> str:
        v = (v or "").strip()
        return _email(v) if v else ""


class AuditLogItemOut(BaseModel):
    id: int
    user_id: Optional[str] = None
    action: str
    details: Dict[str, Any]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[str] = None


class PublicStoreOut(BaseModel):
    store_name: str
    shipping_charge: float
    free_shipping_threshold: float
