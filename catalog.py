"""Product catalog lookups, demo seed data and index setup."""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING, DESCENDING

from database import create_document, to_object_id
from schemas import Product as ProductSchema

logger = logging.getLogger(__name__)

DISPLAY_FIELDS = {"name": 1, "price": 1, "image": 1, "brand": 1, "condition": 1}
SEARCH_FIELDS = ("name", "brand", "category", "description", "specs")
LIST_LIMIT = 100
SUGGEST_LIMIT = 8


def find_product(db, product_id, projection: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
    """Return the product document, or None when the id is malformed or unknown."""
    oid = to_object_id(product_id)
    if oid is None:
        return None
    return db["product"].find_one({"_id": oid}, projection)


def find_products(db, product_ids: Iterable, projection: Optional[Dict[str, int]] = None) -> Dict[str, Dict[str, Any]]:
    """Batch lookup keyed by the string id."""
    oids = [oid for oid in (to_object_id(pid) for pid in product_ids) if oid is not None]
    if not oids:
        return {}
    return {str(doc["_id"]): doc for doc in db["product"].find({"_id": {"$in": oids}}, projection)}


def build_product_filter(
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if search and search.strip():
        regex = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{field: regex} for field in SEARCH_FIELDS]
    if category and category != "all":
        query["category"] = {"$regex": re.escape(category), "$options": "i"}
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        query["price"] = price_filter
    return query


def list_products(
    db,
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    suggest: bool = False,
) -> List[Dict[str, Any]]:
    query = build_product_filter(search, category, min_price, max_price)
    logger.debug("Product query: %s", query)
    if suggest:
        projection = dict(DISPLAY_FIELDS, category=1)
        return list(db["product"].find(query, projection).limit(SUGGEST_LIMIT))
    return list(db["product"].find(query).limit(LIST_LIMIT))


def ensure_indexes(db) -> None:
    db["user"].create_index("email", unique=True)
    db["order"].create_index("order_number", unique=True)
    db["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db["sell"].create_index("submission_id", unique=True)
    db["sell"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db["sell"].create_index("status")


# ----------------------------------------------------------------------------
# Demo catalog
# ----------------------------------------------------------------------------

SAMPLE_PRODUCTS = [
    {
        "name": "MacBook Air M1",
        "price": 64999,
        "image": "https://m.media-amazon.com/images/I/71TPda7cwUL._SL1500_.jpg",
        "condition": "Excellent",
        "category": "apple",
        "brand": "Apple",
        "description": "Apple MacBook Air with M1 chip",
        "specs": ["13.3\" Retina Display", "Apple M1 Chip", "8GB RAM", "256GB SSD", "18hr Battery Life"],
        "quantity": 5,
    },
    {
        "name": "Dell XPS 13",
        "price": 57499,
        "image": "https://m.media-amazon.com/images/I/71v2jVhGSZL._SL1500_.jpg",
        "condition": "Like New",
        "category": "dell",
        "brand": "Dell",
        "description": "Dell XPS 13 laptop",
        "specs": ["13.4\" FHD+ Display", "Intel i5 Processor", "8GB RAM", "512GB SSD"],
        "quantity": 4,
    },
    {
        "name": "HP EliteBook 840 G6",
        "price": 41999,
        "image": "https://m.media-amazon.com/images/I/61oIuBFLq-L._SL1500_.jpg",
        "condition": "Very Good",
        "category": "hp",
        "brand": "HP",
        "description": "HP EliteBook 840 G6 business laptop",
        "specs": ["14\" FHD Display", "Intel i5 Processor", "8GB RAM", "256GB SSD", "Windows 11 Pro"],
        "quantity": 6,
    },
    {
        "name": "MacBook Pro M2",
        "price": 89999,
        "image": "https://m.media-amazon.com/images/I/81jB6e+kY2L._SL1500_.jpg",
        "condition": "Excellent",
        "category": "apple",
        "brand": "Apple",
        "description": "MacBook Pro with M2 chip",
        "specs": ["13.3\" Retina Display", "Apple M2 Chip", "8GB RAM", "256GB SSD"],
        "quantity": 3,
    },
    {
        "name": "Lenovo ThinkPad X1 Carbon",
        "price": 68999,
        "image": "https://m.media-amazon.com/images/I/71L2V2eRfLL._SL1500_.jpg",
        "condition": "Like New",
        "category": "lenovo",
        "brand": "Lenovo",
        "description": "Lenovo ThinkPad X1 Carbon business laptop",
        "specs": ["14\" WUXGA Display", "Intel i5 Processor", "16GB RAM", "512GB SSD", "Backlit Keyboard"],
        "quantity": 4,
    },
    {
        "name": "Acer Aspire 3",
        "price": 8000,
        "image": "https://m.media-amazon.com/images/I/71WtK6pUZaL._SL1500_.jpg",
        "condition": "Good",
        "category": "acer",
        "brand": "Acer",
        "description": "Acer Aspire 3 budget laptop for everyday use",
        "specs": ["14\" FHD IPS Display", "AMD Ryzen 5", "8GB RAM", "512GB SSD"],
        "quantity": 10,
    },
]


def seed_products(db) -> int:
    """Insert the demo catalog when the product collection is empty."""
    if db["product"].count_documents({}) > 0:
        return 0
    for p in SAMPLE_PRODUCTS:
        create_document("product", ProductSchema(warranty="1 Year Warranty", **p), database=db)
    logger.info("Seeded %d products", len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)
