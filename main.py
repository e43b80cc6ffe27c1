import logging
import time
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo.errors import PyMongoError

import addresses as address_book
import auth
import cart as cart_service
import catalog
import orders as order_service
import payments
import sell as sell_service
from config import settings
from database import db, doc_to_public, get_db, to_object_id
from errors import InvalidInput, NotFound, register_exception_handlers
from logging_setup import setup_logging
from mailer import Mailer, send_contact_message
from otp_store import OTPStore
from payments import RazorpayGateway
from schemas import AddressKind, OrderStatus, PaymentMethod, PaymentStatus, SellImage, ShippingAddress
from security import CurrentUser, get_current_user, require_admin

# ----------------------------------------------------------------------------
# App Setup
# ----------------------------------------------------------------------------

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Rekraft API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# ----------------------------------------------------------------------------
# Collaborators (overridable in tests)
# ----------------------------------------------------------------------------

_otp_store = OTPStore(ttl_seconds=settings.otp_ttl_seconds)
_mailer = Mailer(settings)
_gateway = RazorpayGateway(
    settings.razorpay_key_id,
    settings.razorpay_key_secret,
    base_url=settings.razorpay_base_url,
    timeout=settings.gateway_timeout_seconds,
)


def get_otp_store() -> OTPStore:
    return _otp_store


def get_mailer() -> Mailer:
    return _mailer


def get_gateway() -> RazorpayGateway:
    return _gateway


def get_payment_secret() -> Optional[str]:
    return settings.razorpay_key_secret


def ok(data: Any = None, message: Optional[str] = None, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "data": doc_to_public(data)}
    if message:
        body["message"] = message
    body.update(extra)
    return body


# ----------------------------------------------------------------------------
# Models (request bodies)
# ----------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    phone: str


class LoginRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class VerifyOtpRequest(BaseModel):
    email: str
    otp: str


class ResetPasswordRequest(BaseModel):
    email: str
    password: str


class AddCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    quantity: int


class AddressCreateRequest(BaseModel):
    kind: Optional[AddressKind] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None
    is_default: bool = False


class AddressUpdateRequest(BaseModel):
    kind: Optional[AddressKind] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None
    is_default: Optional[bool] = None


class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class CreateOrderRequest(BaseModel):
    items: List[OrderLine]
    shipping_address: Optional[ShippingAddress] = None
    address_id: Optional[str] = None
    payment_method: PaymentMethod
    subtotal: float = Field(..., ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    total: Optional[float] = Field(None, ge=0)


class OrderStatusUpdateRequest(BaseModel):
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


class CreateGatewayOrderRequest(BaseModel):
    order_id: str
    currency: str = "INR"


class VerifyPaymentRequest(BaseModel):
    order_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class SellRequest(BaseModel):
    device_type: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[Union[int, str]] = None
    condition: Optional[str] = None
    processor: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[Union[int, str]] = None
    storage_type: Optional[str] = None
    screen_size: Optional[str] = None
    graphics: Optional[str] = None
    operating_system: Optional[str] = None
    scratches: Optional[str] = None
    dents: Optional[str] = None
    screen_condition: Optional[str] = None
    keyboard_condition: Optional[str] = None
    battery_health: Optional[str] = None
    charger_included: Optional[bool] = None
    original_box: Optional[bool] = None
    functional_issues: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[Union[int, str]] = None
    pincode: Optional[Union[int, str]] = None
    city: Optional[str] = None
    address: Optional[str] = None
    images: Optional[List[SellImage]] = None
    estimated_price: Optional[int] = None


class SellUpdateRequest(BaseModel):
    status: Optional[str] = None


class ContactRequest(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    subject: str
    message: str

    @field_validator("name", "subject", "message")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("is required")
        return value


# ----------------------------------------------------------------------------
# Auth Endpoints
# ----------------------------------------------------------------------------

@app.post("/auth/register", status_code=201)
def register(body: RegisterRequest, database=Depends(get_db)):
    user = auth.register_user(database, body.name, body.email, body.password, body.phone)
    return ok(user, "Registration successful!")


@app.post("/auth/login")
def login(body: LoginRequest, database=Depends(get_db)):
    return ok(auth.authenticate(database, body.email, body.password), "Login successful!")


@app.get("/auth/me")
def me(current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    user = database["user"].find_one({"_id": to_object_id(current.id)})
    if not user:
        raise NotFound("User not found")
    return ok(auth.public_profile(user))


@app.post("/auth/forgot-password")
def forgot_password(
    body: ForgotPasswordRequest,
    database=Depends(get_db),
    otp_store: OTPStore = Depends(get_otp_store),
    mailer: Mailer = Depends(get_mailer),
):
    otp = auth.start_password_reset(database, otp_store, mailer, body.email, expose_code=settings.is_development)
    expires_in = f"{otp_store.ttl_seconds // 60} minutes"
    if otp:
        return {"success": True, "message": "Password reset OTP generated", "otp": otp, "expiresIn": expires_in}
    return {"success": True, "message": "Password reset OTP sent to your email", "expiresIn": expires_in}


@app.post("/auth/verify-reset-otp")
def verify_reset_otp(body: VerifyOtpRequest, otp_store: OTPStore = Depends(get_otp_store)):
    auth.verify_reset_code(otp_store, body.email, body.otp)
    return {"success": True, "message": "OTP verified successfully"}


@app.post("/auth/reset-password")
def reset_password(body: ResetPasswordRequest, database=Depends(get_db), otp_store: OTPStore = Depends(get_otp_store)):
    auth.reset_password(database, otp_store, body.email, body.password)
    return {"success": True, "message": "Password reset successfully"}


# ----------------------------------------------------------------------------
# Product Endpoints
# ----------------------------------------------------------------------------

@app.get("/products")
def list_products(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    min_price: Optional[int] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[int] = Query(None, alias="maxPrice", ge=0),
    suggest: bool = Query(False),
    database=Depends(get_db),
):
    items = catalog.list_products(database, search, category, min_price, max_price, suggest=suggest)
    return ok(items, count=len(items))


@app.get("/products/{product_id}")
def get_product(product_id: str, database=Depends(get_db)):
    product = catalog.find_product(database, product_id)
    if not product:
        raise NotFound("Product not found")
    return ok(product)


# ----------------------------------------------------------------------------
# Cart
# ----------------------------------------------------------------------------

@app.get("/cart")
def get_cart(current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    return ok(cart_service.get_cart(database, current.id))


@app.post("/cart/add")
def add_to_cart(body: AddCartRequest, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    cart_service.add_item(database, current.id, body.product_id, body.quantity)
    return ok(cart_service.get_cart(database, current.id), "Item added to cart")


@app.put("/cart/item/{item_id}")
def update_cart_item(
    item_id: str,
    body: UpdateCartItemRequest,
    current: CurrentUser = Depends(get_current_user),
    database=Depends(get_db),
):
    cart_service.update_item(database, current.id, item_id, body.quantity)
    return ok(cart_service.get_cart(database, current.id), "Cart updated successfully")


@app.delete("/cart/item/{item_id}")
def remove_cart_item(item_id: str, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    cart_service.remove_item(database, current.id, item_id)
    return ok(cart_service.get_cart(database, current.id), "Item removed from cart")


@app.delete("/cart/clear")
def clear_cart(current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    return ok(cart_service.clear_cart(database, current.id), "Cart cleared successfully")


# ----------------------------------------------------------------------------
# Address Book
# ----------------------------------------------------------------------------

@app.get("/user/addresses")
def list_addresses(current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    return ok({"addresses": address_book.list_addresses(database, current.id)})


@app.post("/user/addresses")
def add_address(body: AddressCreateRequest, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    saved = address_book.add_address(database, current.id, body.model_dump())
    return ok({"addresses": saved}, "Address added successfully")


@app.put("/user/addresses/{address_id}")
def update_address(
    address_id: str,
    body: AddressUpdateRequest,
    current: CurrentUser = Depends(get_current_user),
    database=Depends(get_db),
):
    saved = address_book.update_address(database, current.id, address_id, body.model_dump(exclude_unset=True))
    return ok({"addresses": saved}, "Address updated successfully")


@app.delete("/user/addresses/{address_id}")
def delete_address(address_id: str, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    saved = address_book.remove_address(database, current.id, address_id)
    return ok({"addresses": saved}, "Address deleted successfully")


@app.put("/user/addresses/{address_id}/default")
def set_default_address(address_id: str, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    saved = address_book.set_default_address(database, current.id, address_id)
    return ok({"addresses": saved}, "Default address updated successfully")


# ----------------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------------

@app.post("/orders", status_code=201)
def create_order(body: CreateOrderRequest, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    if body.shipping_address is not None:
        shipping_address = body.shipping_address.model_dump()
    elif body.address_id:
        saved = address_book.get_address(database, current.id, body.address_id)
        shipping_address = {
            "full_name": saved["full_name"],
            "phone": saved["phone"],
            "email": current.email,
            "line1": saved["line1"],
            "line2": saved.get("line2"),
            "city": saved["city"],
            "state": saved["state"],
            "pincode": saved["pincode"],
            "landmark": saved.get("landmark"),
        }
    else:
        raise InvalidInput("Shipping address is required")

    order = order_service.create_order(
        database,
        current.id,
        [line.model_dump() for line in body.items],
        shipping_address,
        body.payment_method,
        body.subtotal,
        body.shipping,
        body.tax,
        body.total,
    )
    return ok(order, "Order created successfully")


@app.get("/orders")
def list_orders(current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    items = order_service.list_orders(database, current.id)
    return ok(items, count=len(items))


@app.get("/orders/{order_id}")
def get_order(order_id: str, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    return ok(order_service.get_order(database, current, order_id))


@app.put("/orders/{order_id}")
def update_order(
    order_id: str,
    body: OrderStatusUpdateRequest,
    current: CurrentUser = Depends(get_current_user),
    database=Depends(get_db),
):
    order = order_service.update_order_status(
        database, current, order_id, order_status=body.order_status, payment_status=body.payment_status
    )
    return ok(order, "Order updated successfully")


# ----------------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------------

@app.post("/payments/create-order")
def create_payment_order(
    body: CreateGatewayOrderRequest,
    current: CurrentUser = Depends(get_current_user),
    database=Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    gateway_order = payments.create_gateway_order(database, gateway, current.id, body.order_id, body.currency)
    return ok(gateway_order)


@app.post("/payments/verify-payment")
def verify_payment(
    body: VerifyPaymentRequest,
    current: CurrentUser = Depends(get_current_user),
    database=Depends(get_db),
    secret: Optional[str] = Depends(get_payment_secret),
):
    order = payments.verify_payment(
        database,
        secret,
        current.id,
        body.order_id,
        body.razorpay_order_id,
        body.razorpay_payment_id,
        body.razorpay_signature,
    )
    return ok(order, "Payment verified successfully")


# ----------------------------------------------------------------------------
# Sell Your Device
# ----------------------------------------------------------------------------

@app.post("/sell", status_code=201)
def create_sell_submission(body: SellRequest, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    submission = sell_service.create_submission(database, current, body.model_dump(exclude_none=True))
    return ok(
        {"submission_id": submission["submission_id"], "estimated_price": submission["estimated_price"]},
        "Sell request submitted successfully! We will contact you within 24 hours.",
    )


@app.get("/sell")
def list_sell_submissions(current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    items = sell_service.list_submissions(database, current.id)
    return ok(items, count=len(items))


@app.get("/sell/{submission_id}")
def get_sell_submission(submission_id: str, current: CurrentUser = Depends(get_current_user), database=Depends(get_db)):
    return ok(sell_service.get_submission(database, current.id, submission_id))


@app.put("/sell/{submission_id}")
def cancel_sell_submission(
    submission_id: str,
    body: Optional[SellUpdateRequest] = None,
    current: CurrentUser = Depends(get_current_user),
    database=Depends(get_db),
):
    requested = body.status if body else None
    submission = sell_service.cancel_submission(database, current.id, submission_id, requested)
    return ok(submission, "Submission cancelled successfully")


# ----------------------------------------------------------------------------
# Contact
# ----------------------------------------------------------------------------

@app.post("/contact/send")
def send_contact(body: ContactRequest, mailer: Mailer = Depends(get_mailer)):
    send_contact_message(mailer, settings.admin_email, body.model_dump())
    return {"success": True, "message": "Message sent successfully! We will get back to you soon."}


# ----------------------------------------------------------------------------
# Health and Admin
# ----------------------------------------------------------------------------

@app.get("/")
def root():
    return {"message": "Rekraft backend is running"}


@app.get("/health")
def health():
    status = {"status": "OK", "environment": settings.app_env, "database": "Not Configured"}
    if db is not None:
        try:
            db.command("ping")
            status["database"] = "Connected"
        except PyMongoError as e:
            status["database"] = f"Error: {str(e)[:80]}"
    return status


@app.post("/admin/seed")
def trigger_seed(user: CurrentUser = Depends(require_admin), database=Depends(get_db)):
    inserted = catalog.seed_products(database)
    return ok({"seeded": inserted > 0, "products": inserted})


@app.on_event("startup")
def on_startup():
    if db is None:
        return
    try:
        catalog.ensure_indexes(db)
        catalog.seed_products(db)
    except PyMongoError as e:
        # Cold start without a reachable database still serves /health
        logger.warning("Startup database setup failed: %s", e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
