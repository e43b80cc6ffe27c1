"""Account registration, login and the password-reset flow."""

import logging
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError

from cart import empty_cart
from database import utcnow
from errors import Conflict, InvalidInput, NotFound, Unauthorized, UpstreamFailure
from mailer import Mailer, send_password_reset
from otp_store import OTPStore
from schemas import User as UserSchema
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "role": user.get("role", "customer"),
        "addresses": user.get("addresses", []),
    }


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def register_user(db, name: str, email: str, password: str, phone: str) -> Dict[str, Any]:
    if not (name and email and password and phone):
        raise InvalidInput("All fields are required: name, email, password, phone")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    email = _normalize_email(email)
    if db["user"].find_one({"email": email}):
        raise Conflict("User already exists with this email")

    user = UserSchema(name=name, email=email, phone=phone, password_hash=hash_password(password))
    now = utcnow()
    doc = {**user.model_dump(), "cart": empty_cart(), "created_at": now, "updated_at": now}
    try:
        doc["_id"] = db["user"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise Conflict("User already exists with this email")
    logger.info("User registered: %s", email)
    return {**public_profile(doc), "token": create_access_token(str(doc["_id"]))}


def authenticate(db, email: str, password: str) -> Dict[str, Any]:
    if not email or not password:
        raise InvalidInput("Email and password are required")
    user = db["user"].find_one({"email": _normalize_email(email)})
    if not user or not user.get("password_hash") or not verify_password(password, user["password_hash"]):
        raise Unauthorized("Invalid email or password")
    logger.info("User logged in: %s", user["email"])
    return {**public_profile(user), "token": create_access_token(str(user["_id"]))}


def start_password_reset(db, otp_store: OTPStore, mailer: Mailer, email: str,
                         expose_code: bool = False) -> Optional[str]:
    """Issue a reset code and email it.

    Returns the code only when mail delivery failed and `expose_code` is set
    (development); otherwise the mail failure propagates.
    """
    email = _normalize_email(email)
    if not email:
        raise InvalidInput("Email is required")
    if not db["user"].find_one({"email": email}, {"_id": 1}):
        raise NotFound("No account found with this email")

    otp = otp_store.issue(email)
    try:
        send_password_reset(mailer, email, otp, otp_store.ttl_seconds // 60)
    except UpstreamFailure:
        if not expose_code:
            raise
        logger.warning("Reset mail to %s not delivered; returning code in response", email)
        return otp
    return None


def verify_reset_code(otp_store: OTPStore, email: str, otp: str) -> None:
    if not email or not otp:
        raise InvalidInput("Email and OTP are required")
    otp_store.verify(_normalize_email(email), otp)
    logger.info("Reset code verified for %s", email)


def reset_password(db, otp_store: OTPStore, email: str, password: str) -> None:
    if not email or not password:
        raise InvalidInput("Email and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    email = _normalize_email(email)
    if not otp_store.is_verified(email):
        raise InvalidInput("OTP verification required")
    result = db["user"].update_one(
        {"email": email},
        {"$set": {"password_hash": hash_password(password), "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise NotFound("User not found")
    otp_store.discard(email)
    logger.info("Password reset for %s", email)
