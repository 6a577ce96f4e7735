"""
Database Schemas for the Rythu Dipo store

Each Pydantic model backed by a MongoDB collection uses the lowercase of the
class name as the collection name (User -> "user", Order -> "order").
Request bodies and wire-only shapes live at the bottom of the file.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PHONE_PATTERN = r"^\d{10}$"
PINCODE_PATTERN = r"^\d{6}$"


class User(BaseModel):
    """Account record. Plaintext passwords and OTPs are never stored."""
    id: Optional[str] = None
    name: str
    email: str
    password_hash: Optional[str] = None
    phone: str
    is_verified: bool = False
    otp_hash: Optional[str] = None
    otp_expiry: Optional[datetime] = None
    otp_resend_count: int = Field(0, ge=0)
    last_otp_resend_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "isVerified": self.is_verified,
        }


class NewAccount(BaseModel):
    """Signup fields after format checks."""
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., pattern=PHONE_PATTERN)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class OrderItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId", min_length=1)
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: str


class ShippingAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    full_name: str = Field(..., alias="fullName", min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    phone: str = Field(..., pattern=PHONE_PATTERN)


class OrderDraft(BaseModel):
    """Checkout payload as submitted by the client. Totals are not accepted."""
    model_config = ConfigDict(populate_by_name=True)

    items: List[OrderItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress = Field(..., alias="shippingAddress")
    notes: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    user_id: str
    order_number: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: Literal["COD"] = "COD"
    subtotal: float = Field(..., ge=0)
    shipping_cost: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    status: Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"] = "pending"
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "total": self.total,
            "status": self.status,
            "createdAt": _iso(self.created_at),
        }

    def wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "items": [i.model_dump(by_alias=True) for i in self.items],
            "shippingAddress": self.shipping_address.model_dump(by_alias=True),
            "paymentMethod": self.payment_method,
            "subtotal": self.subtotal,
            "shippingCost": self.shipping_cost,
            "total": self.total,
            "status": self.status,
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Product(BaseModel):
    """Catalog record, read from the static catalog file."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str = ""
    category: str
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    features: List[str] = []
    in_stock: bool = Field(True, alias="inStock")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ----------------------- Request bodies -----------------------
# Fields are optional so that missing values reach the services, which
# report them with the store's own messages.

class SignupBody(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None


class VerifyOtpBody(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class ResendOtpBody(BaseModel):
    email: Optional[str] = None


class LoginBody(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class OrderCreateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: Optional[List[Any]] = None
    shipping_address: Optional[Dict[str, Any]] = Field(None, alias="shippingAddress")
    notes: Optional[str] = None
