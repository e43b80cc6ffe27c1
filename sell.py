"""
"Sell your device" submissions.

A submission is created once by its owner, priced with `pricing.estimate_price`
unless the client already supplied a positive estimate, and can afterwards
only be cancelled by the owner. Every other status change belongs to the
review team and is not exposed here.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import to_object_id, utcnow
from errors import InvalidInput, NotFound
from orders import generate_reference
from pricing import estimate_price
from schemas import SELL_TERMINAL_STATUSES, Sell as SellSchema

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("brand", "model", "year", "condition", "name", "email", "phone", "pincode", "city", "address")
SUBMISSION_PREFIX = "RK"
# accepted as numbers from the form, stored as text
NUMERIC_TEXT_FIELDS = ("year", "storage", "pincode", "phone")


def generate_submission_id() -> str:
    return generate_reference(SUBMISSION_PREFIX)


def create_submission(db, user, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate, price and store a submission for the authenticated user."""
    data = {k: v for k, v in payload.items() if v is not None}
    for field in NUMERIC_TEXT_FIELDS:
        if isinstance(data.get(field), (int, float)) and not isinstance(data.get(field), bool):
            data[field] = str(data[field])
    data.setdefault("name", user.name)
    data.setdefault("email", user.email)
    data.setdefault("phone", user.phone)

    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise InvalidInput(f"Required fields missing: {', '.join(missing)}")

    if not data.get("estimated_price"):
        data["estimated_price"] = estimate_price(data)
        logger.info("Calculated estimated price %s for %s %s", data["estimated_price"], data["brand"], data["model"])

    for field in ("status", "final_price", "user_id", "submission_id"):
        data.pop(field, None)
    submission = SellSchema(**data, user_id=str(user.id), submission_id=generate_submission_id())

    now = utcnow()
    doc = {**submission.model_dump(), "created_at": now, "updated_at": now}
    doc["_id"] = db["sell"].insert_one(doc).inserted_id
    logger.info("Sell submission %s created for %s", doc["submission_id"], user.email)
    return doc


def _owned_filter(user_id, submission_id) -> Dict[str, Any]:
    oid = to_object_id(submission_id)
    key = {"_id": oid} if oid is not None else {"submission_id": str(submission_id)}
    return {**key, "user_id": str(user_id)}


def list_submissions(db, user_id) -> List[Dict[str, Any]]:
    return list(db["sell"].find({"user_id": str(user_id)}).sort("created_at", -1))


def get_submission(db, user_id, submission_id) -> Dict[str, Any]:
    doc = db["sell"].find_one(_owned_filter(user_id, submission_id))
    if not doc:
        raise NotFound("Submission not found or access denied")
    return doc


def cancel_submission(db, user_id, submission_id, requested_status: Optional[str] = None) -> Dict[str, Any]:
    """The one transition an owner may make: any non-terminal state -> cancelled."""
    if requested_status not in (None, "cancelled"):
        raise InvalidInput("Submissions can only be cancelled")
    doc = get_submission(db, user_id, submission_id)
    if doc.get("status") in SELL_TERMINAL_STATUSES:
        raise InvalidInput(f"Submission is already {doc['status']}")
    updated = db["sell"].find_one_and_update(
        {"_id": doc["_id"], "status": doc["status"]},
        {"$set": {"status": "cancelled", "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidInput("Submission status changed, please retry")
    logger.info("Sell submission %s cancelled", doc["submission_id"])
    return updated
