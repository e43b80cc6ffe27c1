"""Shared test fixtures for the Rekraft backend."""

from unittest.mock import MagicMock

import mongomock
import pytest
from fastapi.testclient import TestClient

from catalog import ensure_indexes, find_product
from database import create_document
from errors import UpstreamFailure
from otp_store import OTPStore
from security import CurrentUser, create_access_token, hash_password

TEST_PASSWORD = "secret123"
PAYMENT_SECRET = "test_key_secret"


class FakeMailer:
    """Records outgoing mail instead of talking to an SMTP relay."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    @property
    def configured(self) -> bool:
        return True

    def send(self, to, subject, html):
        if self.fail:
            raise UpstreamFailure("Failed to send email")
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture
def db():
    """In-memory database with the production indexes."""
    database = mongomock.MongoClient()["rekraft_test"]
    ensure_indexes(database)
    return database


def _insert_user(db, name, email, role="customer", **extra):
    doc = {
        "name": name,
        "email": email,
        "phone": "9876543210",
        "password_hash": hash_password(TEST_PASSWORD),
        "role": role,
        "is_active": True,
        "cart": {"items": [], "total_price": 0},
        "addresses": [],
        **extra,
    }
    doc["_id"] = db["user"].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def user_doc(db):
    return _insert_user(db, "Asha Rao", "asha@example.com")


@pytest.fixture
def other_user_doc(db):
    return _insert_user(db, "Vikram Shah", "vikram@example.com")


@pytest.fixture
def admin_doc(db):
    return _insert_user(db, "Admin", "admin@rekraft.in", role="admin")


@pytest.fixture
def user(user_doc) -> CurrentUser:
    return CurrentUser.from_doc(user_doc)


@pytest.fixture
def other_user(other_user_doc) -> CurrentUser:
    return CurrentUser.from_doc(other_user_doc)


@pytest.fixture
def admin(admin_doc) -> CurrentUser:
    return CurrentUser.from_doc(admin_doc)


@pytest.fixture
def laptop(db):
    """A product with plenty of stock."""
    product_id = create_document("product", {
        "name": "Dell Latitude 7490",
        "price": 24999,
        "image": "https://example.com/latitude.jpg",
        "condition": "Very Good",
        "category": "dell",
        "brand": "Dell",
        "description": "Business laptop",
        "specs": ["14\" FHD", "Intel i5", "8GB RAM"],
        "quantity": 10,
    }, database=db)
    return find_product(db, product_id)


@pytest.fixture
def last_unit(db):
    """A product with a single unit left."""
    product_id = create_document("product", {
        "name": "ThinkPad T480",
        "price": 21999,
        "image": "https://example.com/t480.jpg",
        "condition": "Good",
        "category": "lenovo",
        "brand": "Lenovo",
        "description": "Durable business laptop",
        "specs": ["14\" HD", "Intel i5"],
        "quantity": 1,
    }, database=db)
    return find_product(db, product_id)


@pytest.fixture
def shipping_address() -> dict:
    return {
        "full_name": "Asha Rao",
        "phone": "9876543210",
        "email": "asha@example.com",
        "line1": "12 MG Road",
        "line2": "Flat 4B",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def gateway():
    fake = MagicMock()
    fake.configured = True
    fake.create_order.return_value = {"id": "order_GW123", "amount": 0, "currency": "INR", "status": "created"}
    return fake


@pytest.fixture
def otp_store() -> OTPStore:
    return OTPStore(ttl_seconds=600)


@pytest.fixture
def client(db, mailer, gateway, otp_store):
    """API client wired to the in-memory database and fake collaborators."""
    import main
    from database import get_db

    main.app.dependency_overrides[get_db] = lambda: db
    main.app.dependency_overrides[main.get_mailer] = lambda: mailer
    main.app.dependency_overrides[main.get_gateway] = lambda: gateway
    main.app.dependency_overrides[main.get_otp_store] = lambda: otp_store
    main.app.dependency_overrides[main.get_payment_secret] = lambda: PAYMENT_SECRET
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user_doc) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user_doc['_id']))}"}


@pytest.fixture
def admin_headers(admin_doc) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(admin_doc['_id']))}"}
