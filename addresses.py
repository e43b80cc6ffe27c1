"""
Per-user address book stored in `user.addresses`.

Exactly one address is the default whenever the book is not empty. Writes
replace the whole list, guarded on the `addresses_rev` counter read with it,
and are replayed on a fresh copy when another request wrote in between.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId

from database import to_object_id, utcnow
from errors import Conflict, InvalidInput, NotFound
from schemas import Address

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("full_name", "phone", "line1", "city", "state", "pincode")
EDITABLE_FIELDS = ("kind", "full_name", "phone", "line1", "line2", "city", "state", "pincode", "landmark", "is_default")
MAX_WRITE_ATTEMPTS = 5


def _load(db, user_id) -> Tuple[List[Dict[str, Any]], Optional[int]]:
    user = db["user"].find_one({"_id": to_object_id(user_id)}, {"addresses": 1, "addresses_rev": 1})
    if not user:
        raise NotFound("User not found")
    return user.get("addresses") or [], user.get("addresses_rev")


def _save(db, user_id, addresses: List[Dict[str, Any]], rev: Optional[int]) -> bool:
    result = db["user"].update_one(
        {"_id": to_object_id(user_id), "addresses_rev": rev},
        {"$set": {"addresses": addresses, "addresses_rev": (rev or 0) + 1, "updated_at": utcnow()}},
    )
    return result.matched_count == 1


def _mutate(db, user_id, change: Callable[[List[Dict[str, Any]]], None]) -> List[Dict[str, Any]]:
    for _ in range(MAX_WRITE_ATTEMPTS):
        addresses, rev = _load(db, user_id)
        change(addresses)
        if _save(db, user_id, addresses, rev):
            return addresses
        logger.info("Addresses of user %s changed during update; retrying", user_id)
    raise Conflict("Address book is being updated elsewhere, please retry")


def _find(addresses: List[Dict[str, Any]], address_id) -> Dict[str, Any]:
    for address in addresses:
        if str(address.get("_id")) == str(address_id):
            return address
    raise NotFound("Address not found")


def _clear_default(addresses: List[Dict[str, Any]]) -> None:
    for address in addresses:
        address["is_default"] = False


def list_addresses(db, user_id) -> List[Dict[str, Any]]:
    return _load(db, user_id)[0]


def get_address(db, user_id, address_id) -> Dict[str, Any]:
    return _find(list_addresses(db, user_id), address_id)


def add_address(db, user_id, fields: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Append an address; the first one, or one flagged default, becomes the default."""
    if any(not fields.get(name) for name in REQUIRED_FIELDS):
        raise InvalidInput("Please fill all required fields")

    values = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
    address = Address(**values).model_dump()
    address["_id"] = ObjectId()

    def add(addresses):
        new = dict(address)
        if not addresses or new["is_default"]:
            _clear_default(addresses)
            new["is_default"] = True
        addresses.append(new)

    saved = _mutate(db, user_id, add)
    logger.info("Address added for user %s", user_id)
    return saved


def update_address(db, user_id, address_id, changes: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Apply the provided fields only; None values leave the field untouched.

    `is_default: True` moves the default here. `is_default: False` is ignored
    because the default can only move by promoting another address.
    """
    values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    make_default = values.pop("is_default", False)

    def update(addresses):
        address = _find(addresses, address_id)
        if values:
            # validate the merged result so required fields cannot be blanked
            merged = {k: v for k, v in {**address, **values}.items() if k in EDITABLE_FIELDS or k == "created_at"}
            if any(not merged.get(name) for name in REQUIRED_FIELDS):
                raise InvalidInput("Please fill all required fields")
            Address(**merged)
            address.update(values)
        if make_default:
            _clear_default(addresses)
            address["is_default"] = True

    return _mutate(db, user_id, update)


def remove_address(db, user_id, address_id) -> List[Dict[str, Any]]:
    """Delete an address, promoting the first remaining one if it was the default."""
    def remove(addresses):
        address = _find(addresses, address_id)
        addresses.remove(address)
        if address.get("is_default") and addresses:
            addresses[0]["is_default"] = True

    return _mutate(db, user_id, remove)


def set_default_address(db, user_id, address_id) -> List[Dict[str, Any]]:
    def promote(addresses):
        address = _find(addresses, address_id)
        _clear_default(addresses)
        address["is_default"] = True

    return _mutate(db, user_id, promote)
