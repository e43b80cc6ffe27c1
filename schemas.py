"""
Database Schemas for the Rekraft refurbished-electronics store

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name by default.

We store:
- User (includes cart and address book, both embedded)
- Product
- Order (items and shipping address are snapshots)
- Sell (device resale submissions)
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

AddressKind = Literal["home", "work", "other"]
PaymentMethod = Literal["card", "upi", "cod"]
PaymentStatus = Literal["pending", "completed", "failed"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
SellStatus = Literal[
    "submitted", "under_review", "accepted", "rejected", "pickup_scheduled", "completed", "cancelled"
]

PAYMENT_STATUSES = get_args(PaymentStatus)
ORDER_STATUSES = get_args(OrderStatus)
SELL_TERMINAL_STATUSES = ("cancelled", "completed", "rejected")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CartItem(BaseModel):
    product_id: str = Field(..., description="Product id as string")
    quantity: int = Field(1, ge=1, description="Quantity for the product")
    unit_price: int = Field(..., ge=0, description="Snapshot price when first added")
    added_at: datetime = Field(default_factory=_now)


class Cart(BaseModel):
    items: List[CartItem] = Field(default_factory=list)
    total_price: int = Field(0, ge=0, description="Always sum of quantity * unit_price")
    updated_at: datetime = Field(default_factory=_now)


class Address(BaseModel):
    kind: AddressKind = "home"
    full_name: str
    phone: str
    line1: str
    line2: str = ""
    city: str
    state: str
    pincode: str
    landmark: str = ""
    is_default: bool = False
    created_at: datetime = Field(default_factory=_now)


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    phone: str = Field(..., description="Mobile number")

    # Auth fields (stored in DB, but not returned in public responses)
    password_hash: str = Field(..., description="Hashed password")
    role: Literal["customer", "admin"] = "customer"
    is_active: bool = True

    # Embedded cart and address book, mutated with one write per request
    cart: Cart = Field(default_factory=Cart)
    addresses: List[Address] = Field(default_factory=list)


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str
    price: int = Field(..., ge=0, description="Price in rupees")
    original_price: Optional[int] = Field(None, ge=0)
    image: str
    condition: str
    category: str
    brand: str
    description: Optional[str] = None
    specs: List[str] = Field(default_factory=list)
    warranty: Optional[str] = None
    quantity: int = Field(0, ge=0, description="Units in stock")


class OrderItem(BaseModel):
    product_id: str
    name: str
    unit_price: int = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None
    brand: Optional[str] = None
    condition: Optional[str] = None


class ShippingAddress(BaseModel):
    full_name: str
    phone: str
    email: Optional[EmailStr] = None
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    pincode: str
    landmark: Optional[str] = None
    country: str = "India"


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    user_id: str
    order_number: str
    items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    order_status: OrderStatus = "pending"
    subtotal: float = Field(..., ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_signature: Optional[str] = None


class SellImage(BaseModel):
    url: str
    name: Optional[str] = None


class Sell(BaseModel):
    """
    Sell submissions collection schema
    Collection name: "sell"
    """
    # Device
    device_type: str = "laptop"
    brand: str
    model: str
    year: str
    condition: str

    # Specifications
    processor: str
    ram: str
    storage: str
    storage_type: str = "ssd"
    screen_size: str
    graphics: str = ""
    operating_system: str = ""

    # Physical condition
    scratches: str
    dents: str
    screen_condition: str
    keyboard_condition: str = "working"
    battery_health: str
    charger_included: bool = True
    original_box: bool = False
    functional_issues: str = ""

    # Contact
    name: str
    email: EmailStr
    phone: str
    pincode: str
    city: str
    address: str

    images: List[SellImage] = Field(default_factory=list)

    estimated_price: int = Field(..., ge=0)
    final_price: Optional[int] = None
    status: SellStatus = "submitted"

    user_id: str
    submission_id: str
