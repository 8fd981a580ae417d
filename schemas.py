"""
Database Schemas for the DocuShop API

Each Pydantic model represents a collection in MongoDB. The collection name is the
lowercase of the class name (e.g., PaymentMethod -> "paymentmethod").

Stored field names follow the public API (camelCase aliases such as "billingInfo"),
so documents are written with model_dump(by_alias=True).
"""

from enum import Enum
from typing import Dict, Optional, List, Type, Union

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    firstname: Optional[str] = Field(None, description="First name")
    lastname: Optional[str] = Field(None, description="Last name")
    username: str = Field(..., description="Unique handle")
    email: EmailStr = Field(..., description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    password: str = Field(..., description="bcrypt hash, never the plain password")
    role: str = Field("user", description="user or admin")
    status: str = Field("active", description="Only active accounts may log in")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    image: str = Field(..., description="Public image URL")
    category: str = Field(..., description="Product category")
    available: bool = Field(True, description="Whether product can be ordered")


# Payment methods

class PaymentType(str, Enum):
    BANK = "Bank"
    PAYPAL = "PayPal"
    SKYPE = "Skype"
    CRYPTO = "Crypto"


class BankCredentials(BaseModel):
    account: str


class PayPalCredentials(BaseModel):
    email: str


class SkypeCredentials(BaseModel):
    id: str


class CryptoCredentials(BaseModel):
    bitcoin: Optional[str] = None
    ethereum: Optional[str] = None
    usdt: Optional[str] = Field(None, description="TRC20 address")


CREDENTIAL_MODELS: Dict[PaymentType, Type[BaseModel]] = {
    PaymentType.BANK: BankCredentials,
    PaymentType.PAYPAL: PayPalCredentials,
    PaymentType.SKYPE: SkypeCredentials,
    PaymentType.CRYPTO: CryptoCredentials,
}

Credentials = Union[BankCredentials, PayPalCredentials, SkypeCredentials, CryptoCredentials]


class PaymentMethod(BaseModel):
    """
    Payment method collection schema
    Collection name: "paymentmethod"
    At most one document per type (unique index on "type").
    """
    model_config = ConfigDict(use_enum_values=True)

    type: PaymentType
    credentials: Credentials
    active: bool = True
    version: int = 0

    @field_validator("credentials", mode="before")
    @classmethod
    def credentials_for_type(cls, v, info):
        method_type = info.data.get("type")
        if method_type is None or isinstance(v, BaseModel):
            return v
        return CREDENTIAL_MODELS[PaymentType(method_type)].model_validate(v or {})


# Orders

class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentChoice(str, Enum):
    PAYPAL = "paypal"
    BANK = "bank"
    CRYPTO = "crypto"


class Snapshot(BaseModel):
    name: str
    price: float = Field(..., ge=0)


class LineItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product: Optional[ObjectId] = None
    quantity: int = Field(..., ge=1)
    snapshot: Snapshot


class BillingInfo(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    address: str
    city: str
    country: str


class PaymentAddresses(BaseModel):
    bitcoin: Optional[str] = None
    ethereum: Optional[str] = None
    usdt: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True, use_enum_values=True)

    user: Optional[ObjectId] = None
    products: List[LineItem]
    total: float = Field(..., ge=0)
    billing_info: BillingInfo = Field(..., alias="billingInfo")
    payment_addresses: Optional[PaymentAddresses] = Field(None, alias="paymentAddresses")
    payment_method: PaymentChoice = Field(PaymentChoice.CRYPTO, alias="paymentMethod")
    status: OrderStatus = OrderStatus.PENDING


class Shipping(BaseModel):
    """
    Shipping settings schema (singleton, key="default")
    Collection name: "shipping"
    """
    model_config = ConfigDict(populate_by_name=True)

    key: str = "default"
    method: str = "Standard Shipping"
    cost: float = Field(0, ge=0)
    estimated_delivery: str = Field("3-5 business days", alias="estimatedDelivery")
