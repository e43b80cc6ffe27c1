"""Password hashing, bearer tokens and the authenticated-user context."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext
from pydantic import BaseModel

from config import settings
from database import get_db, oid_str, to_object_id
from errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


class CurrentUser(BaseModel):
    """Identity resolved from the bearer token, passed explicitly to handlers."""
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "CurrentUser":
        return cls(
            id=oid_str(doc["_id"]),
            name=doc.get("name", ""),
            email=doc.get("email", ""),
            phone=doc.get("phone"),
            role=doc.get("role", "customer"),
        )


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.jwt_expire_days))
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Return the user id carried by a token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired. Please login again.")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token. Please login again.")
    uid = payload.get("sub")
    if not uid:
        raise Unauthorized("Invalid token. Please login again.")
    return uid


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)) -> CurrentUser:
    if not token:
        raise Unauthorized("Not authorized. Please login.")
    uid = decode_access_token(token)
    user = db["user"].find_one({"_id": to_object_id(uid)}, {"password_hash": 0, "cart": 0})
    if not user:
        logger.info("Token for unknown user %s", uid)
        raise Unauthorized("User not found. Please login again.")
    return CurrentUser.from_doc(user)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
