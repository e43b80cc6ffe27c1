"""
Order placement and status management.

Placing an order validates every line before writing anything. Stock is then
taken with guarded `$inc` updates; if one of them loses a race with another
buyer the decrements already applied are given back and the order document is
removed, so a failed placement leaves stock and orders as they were.
"""

import logging
import secrets
import string
import time
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from catalog import find_product
from database import to_object_id, utcnow
from errors import InsufficientStock, InvalidInput, NotFound, Unauthorized
from schemas import ORDER_STATUSES, PAYMENT_STATUSES, Order as OrderSchema, OrderItem, ShippingAddress

logger = logging.getLogger(__name__)

ORDER_PREFIX = "RK"
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix: str = ORDER_PREFIX) -> str:
    """Prefix + epoch milliseconds + 5 random characters, e.g. RK1718000000000X7K2Q."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(5))
    return f"{prefix}{int(time.time() * 1000)}{suffix}"


def generate_order_number() -> str:
    return generate_reference(ORDER_PREFIX)


def _requested_quantities(items: List[Dict[str, Any]]) -> Dict[str, int]:
    wanted: Dict[str, int] = {}
    for line in items:
        product_id = str(line.get("product_id") or "")
        quantity = int(line.get("quantity") or 0)
        if quantity < 1:
            raise InvalidInput("Quantity must be at least 1")
        wanted[product_id] = wanted.get(product_id, 0) + quantity
    return wanted


def _release_stock(db, taken: List[tuple]) -> None:
    for oid, quantity in taken:
        db["product"].update_one({"_id": oid}, {"$inc": {"quantity": quantity}})


def create_order(
    db,
    user_id: str,
    items: List[Dict[str, Any]],
    shipping_address: Dict[str, Any],
    payment_method: str,
    subtotal: float,
    shipping: float = 0,
    tax: float = 0,
    total: Optional[float] = None,
) -> Dict[str, Any]:
    """Validate stock, persist the order with snapshots, then take the stock.

    Raises:
        InvalidInput: no items, or a quantity below one.
        NotFound: a product does not exist.
        InsufficientStock: a product has fewer units than requested.
    """
    if not items:
        raise InvalidInput("Order must contain at least one item")

    wanted = _requested_quantities(items)
    products = {}
    for product_id, quantity in wanted.items():
        product = find_product(db, product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found")
        if int(product.get("quantity", 0)) < quantity:
            raise InsufficientStock(f"Insufficient stock for {product.get('name', product_id)}")
        products[product_id] = product

    order_items = [
        OrderItem(
            product_id=product_id,
            name=products[product_id].get("name", ""),
            unit_price=int(products[product_id].get("price", 0)),
            quantity=quantity,
            image=products[product_id].get("image"),
            brand=products[product_id].get("brand"),
            condition=products[product_id].get("condition"),
        )
        for product_id, quantity in wanted.items()
    ]
    order = OrderSchema(
        user_id=str(user_id),
        order_number=generate_order_number(),
        items=order_items,
        shipping_address=ShippingAddress(**shipping_address),
        payment_method=payment_method,
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax if total is None else total,
    )
    now = utcnow()
    doc = {**order.model_dump(), "created_at": now, "updated_at": now}
    doc["_id"] = db["order"].insert_one(doc).inserted_id

    taken = []
    for product_id, quantity in wanted.items():
        oid = products[product_id]["_id"]
        result = db["product"].update_one(
            {"_id": oid, "quantity": {"$gte": quantity}},
            {"$inc": {"quantity": -quantity}},
        )
        if result.modified_count == 0:
            logger.warning("Stock for %s changed while placing %s; rolling back", product_id, doc["order_number"])
            _release_stock(db, taken)
            db["order"].delete_one({"_id": doc["_id"]})
            raise InsufficientStock(f"Insufficient stock for {products[product_id].get('name', product_id)}")
        taken.append((oid, quantity))

    logger.info("Order %s created for user %s (total %s)", doc["order_number"], user_id, doc["total"])
    return doc


def list_orders(db, user_id: str) -> List[Dict[str, Any]]:
    return list(db["order"].find({"user_id": str(user_id)}).sort("created_at", -1))


def _find_order(db, order_id) -> Dict[str, Any]:
    oid = to_object_id(order_id)
    order = db["order"].find_one({"_id": oid}) if oid is not None else None
    if not order:
        raise NotFound("Order not found")
    return order


def _check_access(order: Dict[str, Any], user) -> None:
    if order["user_id"] != str(user.id) and not user.is_admin:
        raise Unauthorized("Not authorized to access this order")


def get_order(db, user, order_id) -> Dict[str, Any]:
    """Fetch an order visible to its owner or an admin."""
    order = _find_order(db, order_id)
    _check_access(order, user)
    return order


def update_order_status(
    db,
    user,
    order_id,
    order_status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> Dict[str, Any]:
    """Set either status independently; combinations are not cross-checked."""
    if order_status is not None and order_status not in ORDER_STATUSES:
        raise InvalidInput(f"Invalid order status: {order_status}")
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise InvalidInput(f"Invalid payment status: {payment_status}")

    order = _find_order(db, order_id)
    _check_access(order, user)

    update = {"updated_at": utcnow()}
    if order_status:
        update["order_status"] = order_status
    if payment_status:
        update["payment_status"] = payment_status
    return db["order"].find_one_and_update(
        {"_id": order["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
