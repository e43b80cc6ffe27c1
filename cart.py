"""
Shopping cart embedded in the user document.

Every mutation loads the cart, changes `cart.items` in memory, recomputes
`total_price` and `updated_at`, and writes the whole cart back with a single
`$set`, so a stored cart never carries a stale total. The write is guarded on
the `cart_rev` counter read with the cart; when another request wrote in
between, the change is replayed on the fresh cart.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId

from catalog import DISPLAY_FIELDS, find_product, find_products
from database import to_object_id, utcnow
from errors import Conflict, InvalidInput, NotFound

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


def cart_total(items: List[Dict[str, Any]]) -> int:
    return sum(int(item["quantity"]) * int(item["unit_price"]) for item in items)


def empty_cart() -> Dict[str, Any]:
    return {"items": [], "total_price": 0, "updated_at": utcnow()}


def _load_cart(db, user_id) -> Tuple[Dict[str, Any], Optional[int]]:
    user = db["user"].find_one({"_id": to_object_id(user_id)}, {"cart": 1, "cart_rev": 1})
    if not user:
        raise NotFound("User not found")
    cart = user.get("cart") or empty_cart()
    cart.setdefault("items", [])
    return cart, user.get("cart_rev")


def _save_cart(db, user_id, cart: Dict[str, Any], rev: Optional[int]) -> bool:
    """Write the cart back if nobody else did since it was loaded."""
    cart["total_price"] = cart_total(cart["items"])
    cart["updated_at"] = utcnow()
    result = db["user"].update_one(
        {"_id": to_object_id(user_id), "cart_rev": rev},
        {"$set": {"cart": cart, "cart_rev": (rev or 0) + 1}},
    )
    return result.matched_count == 1


def _mutate_cart(db, user_id, change: Callable[[Dict[str, Any]], None]) -> Dict[str, Any]:
    for _ in range(MAX_WRITE_ATTEMPTS):
        cart, rev = _load_cart(db, user_id)
        change(cart)
        if _save_cart(db, user_id, cart, rev):
            return cart
        logger.info("Cart of user %s changed during update; retrying", user_id)
    raise Conflict("Cart is being updated elsewhere, please retry")


def _find_item(cart: Dict[str, Any], item_id: str):
    for item in cart["items"]:
        if str(item.get("_id")) == str(item_id):
            return item
    return None


def add_item(db, user_id, product_id: str, quantity: int = 1) -> Dict[str, Any]:
    """Add a product, merging into the existing line for the same product.

    A merged line keeps the unit price captured when it was first added.
    """
    quantity = int(quantity)
    if quantity < 1:
        raise InvalidInput("Quantity must be at least 1")
    product = find_product(db, product_id, {"price": 1})
    if not product:
        raise NotFound("Product not found")

    def add(cart):
        existing = next((i for i in cart["items"] if i["product_id"] == str(product["_id"])), None)
        if existing:
            existing["quantity"] += quantity
        else:
            cart["items"].append({
                "_id": ObjectId(),
                "product_id": str(product["_id"]),
                "quantity": quantity,
                "unit_price": int(product.get("price", 0)),
                "added_at": utcnow(),
            })

    cart = _mutate_cart(db, user_id, add)
    logger.info("Cart updated for user %s: +%d of %s", user_id, quantity, product_id)
    return cart


def update_item(db, user_id, item_id: str, quantity: int) -> Dict[str, Any]:
    """Set a line's quantity; zero or less removes the line."""
    def update(cart):
        item = _find_item(cart, item_id)
        if item is None:
            raise NotFound("Cart item not found")
        if quantity <= 0:
            cart["items"].remove(item)
        else:
            item["quantity"] = int(quantity)

    return _mutate_cart(db, user_id, update)


def remove_item(db, user_id, item_id: str) -> Dict[str, Any]:
    """Remove a line. Unknown ids leave the cart unchanged."""
    def remove(cart):
        cart["items"] = [i for i in cart["items"] if str(i.get("_id")) != str(item_id)]

    return _mutate_cart(db, user_id, remove)


def clear_cart(db, user_id) -> Dict[str, Any]:
    return _mutate_cart(db, user_id, lambda cart: cart["items"].clear())


def get_cart(db, user_id) -> Dict[str, Any]:
    """Read the cart with product display fields attached to each line."""
    cart, _ = _load_cart(db, user_id)
    products = find_products(db, [i["product_id"] for i in cart["items"]], DISPLAY_FIELDS)
    items = []
    for item in cart["items"]:
        line = dict(item)
        line["product"] = products.get(item["product_id"])
        items.append(line)
    return {
        "items": items,
        "total_price": cart_total(cart["items"]),
        "updated_at": cart.get("updated_at"),
    }
