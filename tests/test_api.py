"""End-to-end tests for the HTTP surface.

Tests cover:
- Response envelope and error mapping
- Auth endpoints and bearer-token enforcement
- Cart, address book, order and payment flows
- Sell submissions, contact form, catalog, health and admin seed
"""

import pytest
from pymongo.errors import DuplicateKeyError, ExecutionTimeout

import catalog
import main
import payments
from conftest import PAYMENT_SECRET, TEST_PASSWORD


def _address_body(**extra):
    body = {
        "full_name": "Asha Rao",
        "phone": "9876543210",
        "line1": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }
    body.update(extra)
    return body


class TestEnvelope:

    def test_unknown_route(self, client):
        resp = client.get("/no/such/route")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Route not found", "url": "/no/such/route"}

    def test_validation_error_is_400(self, client, auth_headers, laptop):
        resp = client.post("/cart/add", json={"product_id": str(laptop["_id"]), "quantity": 0}, headers=auth_headers)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert "quantity" in body["error"]

    def test_root_and_health(self, client):
        assert client.get("/").status_code == 200
        health = client.get("/health").json()
        assert health["status"] == "OK"


class TestAuthEndpoints:

    def test_register_and_me(self, client):
        resp = client.post("/auth/register", json={
            "name": "Meera Iyer", "email": "meera@example.com", "password": "hunter22", "phone": "9000000000",
        })
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["email"] == "meera@example.com"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["data"]["id"] == data["id"]
        assert "password_hash" not in me.json()["data"]

    def test_duplicate_registration_conflicts(self, client, user_doc):
        resp = client.post("/auth/register", json={
            "name": "Asha", "email": "asha@example.com", "password": "hunter22", "phone": "9000000000",
        })
        assert resp.status_code == 409

    def test_login(self, client, user_doc):
        resp = client.post("/auth/login", json={"email": "asha@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["data"]["token"]

    def test_login_failure(self, client, user_doc):
        resp = client.post("/auth/login", json={"email": "asha@example.com", "password": "nope-nope"})
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "Invalid email or password"}

    def test_protected_route_without_token(self, client):
        resp = client.get("/cart")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Not authorized. Please login."

    def test_protected_route_with_bad_token(self, client):
        resp = client.get("/cart", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid token. Please login again."

    def test_password_reset_flow(self, client, user_doc, mailer, otp_store):
        resp = client.post("/auth/forgot-password", json={"email": "asha@example.com"})
        assert resp.status_code == 200
        assert "otp" not in resp.json()
        assert len(mailer.sent) == 1

        code = otp_store._entries["asha@example.com"].code
        wrong = "000000" if code != "000000" else "111111"
        assert client.post("/auth/verify-reset-otp", json={"email": "asha@example.com", "otp": wrong}).status_code == 400
        assert client.post("/auth/verify-reset-otp", json={"email": "asha@example.com", "otp": code}).status_code == 200
        assert client.post("/auth/reset-password", json={"email": "asha@example.com", "password": "brand-new"}).status_code == 200
        assert client.post("/auth/login", json={"email": "asha@example.com", "password": "brand-new"}).status_code == 200


class TestCartEndpoints:

    def test_add_update_remove(self, client, auth_headers, laptop):
        pid = str(laptop["_id"])
        client.post("/cart/add", json={"product_id": pid, "quantity": 2}, headers=auth_headers)
        resp = client.post("/cart/add", json={"product_id": pid, "quantity": 3}, headers=auth_headers)
        cart = resp.json()["data"]
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 5
        assert cart["total_price"] == 5 * 24999
        assert cart["items"][0]["product"]["name"] == "Dell Latitude 7490"

        item_id = cart["items"][0]["id"]
        cart = client.put(f"/cart/item/{item_id}", json={"quantity": 1}, headers=auth_headers).json()["data"]
        assert cart["total_price"] == 24999

        resp = client.delete("/cart/item/64b000000000000000000000", headers=auth_headers)
        assert resp.status_code == 200
        assert len(resp.json()["data"]["items"]) == 1

        cart = client.delete("/cart/clear", headers=auth_headers).json()["data"]
        assert cart["items"] == []
        assert cart["total_price"] == 0

    def test_unknown_product(self, client, auth_headers):
        resp = client.post("/cart/add", json={"product_id": "64b000000000000000000000"}, headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "Product not found"


class TestAddressEndpoints:

    def test_crud(self, client, auth_headers):
        client.post("/user/addresses", json=_address_body(), headers=auth_headers)
        resp = client.post("/user/addresses", json=_address_body(city="Mysuru", kind="work"), headers=auth_headers)
        book = resp.json()["data"]["addresses"]
        assert [a["is_default"] for a in book] == [True, False]

        second = book[1]["id"]
        book = client.put(f"/user/addresses/{second}/default", headers=auth_headers).json()["data"]["addresses"]
        assert [a["is_default"] for a in book] == [False, True]

        book = client.put(f"/user/addresses/{second}", json={"landmark": "Palace"}, headers=auth_headers).json()["data"]["addresses"]
        assert book[1]["landmark"] == "Palace"
        assert book[1]["is_default"] is True

        book = client.delete(f"/user/addresses/{second}", headers=auth_headers).json()["data"]["addresses"]
        assert len(book) == 1
        assert book[0]["is_default"] is True

        listed = client.get("/user/addresses", headers=auth_headers).json()["data"]["addresses"]
        assert len(listed) == 1

    def test_missing_fields(self, client, auth_headers):
        resp = client.post("/user/addresses", json={"full_name": "Asha"}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Please fill all required fields"


class TestOrderAndPaymentEndpoints:

    def _order(self, client, headers, product, quantity=1, **extra):
        body = {
            "items": [{"product_id": str(product["_id"]), "quantity": quantity}],
            "payment_method": "upi",
            "subtotal": product["price"] * quantity,
            **extra,
        }
        return client.post("/orders", json=body, headers=headers)

    def test_order_from_saved_address(self, client, auth_headers, laptop, db):
        address_id = client.post("/user/addresses", json=_address_body(), headers=auth_headers).json()["data"]["addresses"][0]["id"]
        resp = self._order(client, auth_headers, laptop, 2, address_id=address_id)
        assert resp.status_code == 201
        order = resp.json()["data"]
        assert order["shipping_address"]["city"] == "Bengaluru"
        assert order["shipping_address"]["email"] == "asha@example.com"
        assert db["product"].find_one({"_id": laptop["_id"]})["quantity"] == 8

        listed = client.get("/orders", headers=auth_headers).json()
        assert listed["count"] == 1
        assert client.get(f"/orders/{order['id']}", headers=auth_headers).json()["data"]["order_number"] == order["order_number"]

    def test_order_requires_address(self, client, auth_headers, laptop):
        resp = self._order(client, auth_headers, laptop)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Shipping address is required"

    def test_insufficient_stock(self, client, auth_headers, last_unit, shipping_address, db):
        resp = self._order(client, auth_headers, last_unit, 2, shipping_address=shipping_address)
        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert db["product"].find_one({"_id": last_unit["_id"]})["quantity"] == 1

    def test_other_user_cannot_read_order(self, client, auth_headers, laptop, shipping_address, other_user_doc):
        from security import create_access_token

        order = self._order(client, auth_headers, laptop, shipping_address=shipping_address).json()["data"]
        other = {"Authorization": f"Bearer {create_access_token(str(other_user_doc['_id']))}"}
        assert client.get(f"/orders/{order['id']}", headers=other).status_code == 401

    def test_admin_updates_status(self, client, auth_headers, admin_headers, laptop, shipping_address):
        order = self._order(client, auth_headers, laptop, shipping_address=shipping_address).json()["data"]
        resp = client.put(f"/orders/{order['id']}", json={"order_status": "shipped"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["order_status"] == "shipped"
        assert resp.json()["data"]["payment_status"] == "pending"

    def test_payment_flow(self, client, auth_headers, laptop, shipping_address, gateway):
        order = self._order(client, auth_headers, laptop, shipping_address=shipping_address).json()["data"]

        resp = client.post("/payments/create-order", json={"order_id": order["id"]}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == "order_GW123"
        gateway.create_order.assert_called_once()

        bad = client.post("/payments/verify-payment", json={
            "order_id": order["id"],
            "razorpay_order_id": "order_GW123",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "deadbeef",
        }, headers=auth_headers)
        assert bad.status_code == 400
        assert bad.json()["error"] == "Payment verification failed"

        good = client.post("/payments/verify-payment", json={
            "order_id": order["id"],
            "razorpay_order_id": "order_GW123",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": payments.compute_signature(PAYMENT_SECRET, "order_GW123", "pay_1"),
        }, headers=auth_headers)
        assert good.status_code == 200
        assert good.json()["data"]["payment_status"] == "completed"
        assert good.json()["data"]["order_status"] == "confirmed"


class TestSellEndpoints:

    @pytest.fixture
    def sell_body(self):
        return {
            "brand": "Dell",
            "model": "XPS 13",
            "year": 2020,
            "condition": "Good - Visible wear but fully functional",
            "processor": "i5",
            "ram": "8GB",
            "storage": "512",
            "screen_size": "13.4",
            "scratches": "minor",
            "dents": "none",
            "screen_condition": "good",
            "battery_health": "80%",
            "pincode": "110001",
            "city": "Delhi",
            "address": "Connaught Place",
        }

    def test_submit_list_cancel(self, client, auth_headers, sell_body):
        resp = client.post("/sell", json=sell_body, headers=auth_headers)
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["estimated_price"] % 500 == 0
        submission_id = data["submission_id"]

        listed = client.get("/sell", headers=auth_headers).json()
        assert listed["count"] == 1
        assert client.get(f"/sell/{submission_id}", headers=auth_headers).json()["data"]["status"] == "submitted"

        assert client.put(f"/sell/{submission_id}", json={"status": "accepted"}, headers=auth_headers).status_code == 400
        cancelled = client.put(f"/sell/{submission_id}", json={"status": "cancelled"}, headers=auth_headers)
        assert cancelled.json()["data"]["status"] == "cancelled"
        again = client.put(f"/sell/{submission_id}", headers=auth_headers)
        assert again.status_code == 400

    def test_missing_fields(self, client, auth_headers, sell_body):
        del sell_body["model"]
        resp = client.post("/sell", json=sell_body, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Required fields missing: model"

    def test_absurd_year_is_still_priced(self, client, auth_headers, sell_body):
        sell_body["year"] = "-" + "1" * 400
        resp = client.post("/sell", json=sell_body, headers=auth_headers)
        assert resp.status_code == 201
        # 18000 x0.2 (capped age) x0.6 + 2500 ram + 3000 storage = 7660
        assert resp.json()["data"]["estimated_price"] == 7500


class TestContactEndpoint:

    def test_sends_admin_mail_and_auto_reply(self, client, mailer, monkeypatch):
        monkeypatch.setattr(main.settings, "admin_email", "shop@rekraft.in")
        resp = client.post("/contact/send", json={
            "name": "Ravi", "email": "ravi@example.com", "subject": "Bulk order", "message": "Need <b>10</b> laptops",
        })
        assert resp.status_code == 200
        assert [m["to"] for m in mailer.sent] == ["shop@rekraft.in", "ravi@example.com"]
        assert "&lt;b&gt;10&lt;/b&gt;" in mailer.sent[0]["html"]

    def test_blank_message(self, client, mailer):
        resp = client.post("/contact/send", json={
            "name": "Ravi", "email": "ravi@example.com", "subject": "Hi", "message": "   ",
        })
        assert resp.status_code == 400
        assert mailer.sent == []


class TestCatalogAndAdmin:

    def test_search_products(self, client, laptop, last_unit):
        resp = client.get("/products", params={"search": "latitude"})
        body = resp.json()
        assert body["count"] == 1
        assert body["data"][0]["name"] == "Dell Latitude 7490"

    def test_price_filter(self, client, laptop, last_unit):
        body = client.get("/products", params={"maxPrice": 22000}).json()
        assert [p["name"] for p in body["data"]] == ["ThinkPad T480"]

    def test_get_product(self, client, laptop):
        assert client.get(f"/products/{laptop['_id']}").json()["data"]["brand"] == "Dell"
        assert client.get("/products/not-an-id").status_code == 404

    def test_seed_requires_admin(self, client, auth_headers, admin_headers, db):
        assert client.post("/admin/seed", headers=auth_headers).status_code == 403
        resp = client.post("/admin/seed", headers=admin_headers)
        assert resp.json()["data"]["products"] == 6
        assert db["product"].count_documents({}) == 6


class TestDatabaseErrorMapping:

    def test_query_timeout_is_504(self, client, monkeypatch, laptop):
        def timed_out(*args, **kwargs):
            raise ExecutionTimeout("operation exceeded time limit", code=50)

        monkeypatch.setattr(catalog, "find_product", timed_out)
        resp = client.get(f"/products/{laptop['_id']}")
        assert resp.status_code == 504
        assert resp.json() == {"success": False, "error": "Database query timed out"}

    def test_duplicate_key_is_409(self, client, monkeypatch, laptop):
        def duplicate(*args, **kwargs):
            raise DuplicateKeyError("E11000 duplicate key error", code=11000)

        monkeypatch.setattr(catalog, "find_product", duplicate)
        resp = client.get(f"/products/{laptop['_id']}")
        assert resp.status_code == 409
        assert resp.json() == {"success": False, "error": "Duplicate entry"}
