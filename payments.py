"""
Razorpay integration.

The gateway creates payment orders; the checkout widget then calls back with
`(order_id, payment_id, signature)`. A payment is accepted only when the
signature equals HMAC-SHA256(key_secret, "order_id|payment_id").
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import requests
from pymongo import ReturnDocument

from database import to_object_id, utcnow
from errors import InvalidInput, NotFound, UpstreamFailure

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """Thin client for the Razorpay orders API."""

    def __init__(self, key_id: Optional[str], key_secret: Optional[str],
                 base_url: str = "https://api.razorpay.com/v1", timeout: float = 15.0) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(self, amount: int, currency: str = "INR", receipt: Optional[str] = None) -> Dict[str, Any]:
        """Create a gateway order for `amount` in the smallest currency unit (paise)."""
        if not self.configured:
            raise UpstreamFailure("Payment gateway is not configured")
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "payment_capture": 1}
        try:
            resp = self._session.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Razorpay order creation failed: %s", e)
            raise UpstreamFailure("Payment gateway error") from e


def compute_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def _owned_order(db, user_id, order_id) -> Dict[str, Any]:
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid, "user_id": str(user_id)}) if oid is not None else None
    if not order:
        raise NotFound("Order not found")
    return order


def create_gateway_order(db, gateway: RazorpayGateway, user_id, order_id, currency: str = "INR") -> Dict[str, Any]:
    """Open a gateway order for the stored order total and remember its id."""
    order = _owned_order(db, user_id, order_id)
    amount = int(round(float(order["total"]) * 100))
    gateway_order = gateway.create_order(amount, currency, receipt=f"receipt_{order['_id']}")
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"gateway_order_id": gateway_order.get("id"), "updated_at": utcnow()}},
    )
    logger.info("Gateway order %s opened for order %s", gateway_order.get("id"), order["order_number"])
    return gateway_order


def verify_payment(
    db,
    secret: str,
    user_id,
    order_id,
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
) -> Dict[str, Any]:
    """Reconcile a gateway callback with the stored order.

    On a match the order becomes completed/confirmed. On a mismatch only the
    payment status changes (to failed, unless the order is already paid) and
    InvalidInput is raised.
    """
    if not secret:
        raise UpstreamFailure("Payment gateway is not configured")
    order = _owned_order(db, user_id, order_id)
    expected = compute_signature(secret, gateway_order_id or "", gateway_payment_id or "")
    stored_gateway_id = order.get("gateway_order_id")
    valid = hmac.compare_digest(expected.encode(), (signature or "").encode()) and (
        not stored_gateway_id or stored_gateway_id == gateway_order_id
    )

    if not valid:
        if order.get("payment_status") == "completed":
            # a replayed or forged callback must not downgrade a paid order
            logger.warning("Rejected callback for already paid order %s", order["order_number"])
            raise InvalidInput("Payment verification failed")
        db["order"].update_one(
            {"_id": order["_id"], "payment_status": {"$ne": "completed"}},
            {"$set": {"payment_status": "failed", "updated_at": utcnow()}},
        )
        logger.warning("Payment verification failed for order %s", order["order_number"])
        raise InvalidInput("Payment verification failed")

    updated = db["order"].find_one_and_update(
        {"_id": order["_id"]},
        {"$set": {
            "payment_status": "completed",
            "order_status": "confirmed",
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": gateway_payment_id,
            "gateway_signature": signature,
            "updated_at": utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Payment %s verified for order %s", gateway_payment_id, order["order_number"])
    return updated
