"""
Record and request schemas for the storefront.

Records are stored in the key-value store and returned over HTTP with
camelCase field names, e.g. ``shipping_fee`` -> ``shippingFee``.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bankTransfer"
    PAYPAL = "paypal"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Core records

class Product(CamelModel):
    id: str
    name: str
    price: float = Field(..., ge=0)
    image: str
    category: str
    description: str = ""
    colors: str = ""
    sizes: str = ""
    created_at: str
    updated_at: Optional[str] = None


class ContactFields(CamelModel):
    customer_name: str
    email: str
    phone: str = ""
    street: str = ""
    house_number: str = ""
    address_extra: str = ""
    postal_code: str = ""
    city: str = ""


class Order(ContactFields):
    id: str
    items: List[Dict[str, Any]]
    subtotal: float
    shipping_fee: float
    total: float
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    status: OrderStatus = OrderStatus.PENDING
    tracking_number: Optional[str] = None
    order_date: str
    user_id: Optional[str] = None


class Invoice(ContactFields):
    id: str
    order_id: str
    items: List[Dict[str, Any]]
    subtotal: float
    shipping_fee: float
    total: float
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    created_at: str
    user_id: Optional[str] = None


class Customer(CamelModel):
    """Admin-facing projection of an account."""
    id: str
    email: str = "N/A"
    name: str = "N/A"
    city: str = "N/A"
    customer_number: str = "N/A"
    phone: str = ""
    street: str = ""
    house_number: str = ""
    postal_code: str = ""
    created_at: Optional[str] = None


# Request bodies

class SignupRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = ""
    phone: str = ""
    street: str = ""
    house_number: str = ""
    address_extra: str = ""
    postal_code: str = ""
    city: str = ""


class SigninRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    house_number: Optional[str] = None
    address_extra: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None


class AdminLoginRequest(BaseModel):
    username: str
    password: str
