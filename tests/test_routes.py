"""HTTP-level tests: routing, serialization and error-to-status mapping."""

import pytest
from fastapi.testclient import TestClient

from config.database import get_db
from main import app


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestCartRoutes:
    def test_cart_flow(self, client, make_product, make_coupon):
        product = make_product(price="20.00", stock=5)
        make_coupon(code="SAVE10", value="10")

        cart = client.get("/api/carts/me", headers={"X-Session-Id": "visitor-1"}).json()
        again = client.get("/api/carts/me", headers={"X-Session-Id": "visitor-1"}).json()
        assert cart["id"] == again["id"]

        r = client.post(f"/api/carts/{cart['id']}/items", json={"product_id": product.id, "quantity": 2})
        assert r.status_code == 200
        assert r.json()["subtotal"] == 40.0

        r = client.post(f"/api/carts/{cart['id']}/coupon", json={"code": "save10"})
        assert r.json()["discount"] == 4.0
        assert r.json()["total"] == 36.0

        r = client.post(f"/api/carts/{cart['id']}/shipping", json={"country": "US", "postal_code": "10001"})
        assert r.json()["shipping"] == 5.99
        assert r.json()["cart"]["total"] == 41.99

        item_id = r.json()["cart"]["items"][0]["id"]
        r = client.patch(f"/api/carts/{cart['id']}/items/{item_id}", json={"quantity": 0})
        assert r.json()["items"] == []

    def test_insufficient_stock_is_conflict(self, client, make_product):
        product = make_product(stock=1)
        cart = client.get("/api/carts/me", headers={"X-User-Id": "5"}).json()

        r = client.post(f"/api/carts/{cart['id']}/items", json={"product_id": product.id, "quantity": 2})

        assert r.status_code == 409
        assert "Insufficient stock" in r.json()["detail"]

    def test_invalid_quantity_is_bad_request(self, client, make_product):
        product = make_product()
        cart = client.get("/api/carts/me", headers={"X-User-Id": "5"}).json()
        r = client.post(f"/api/carts/{cart['id']}/items", json={"product_id": product.id, "quantity": 0})
        assert r.status_code == 400

    def test_unknown_cart_is_not_found(self, client):
        assert client.get("/api/carts/999").status_code == 404

    def test_owner_header_required(self, client):
        assert client.get("/api/carts/me").status_code == 400

    def test_invalid_coupon_is_bad_request(self, client):
        cart = client.get("/api/carts/me", headers={"X-User-Id": "5"}).json()
        r = client.post(f"/api/carts/{cart['id']}/coupon", json={"code": "NOPE"})
        assert r.status_code == 400

    def test_merge(self, client, make_product):
        product = make_product(stock=5)
        guest = client.get("/api/carts/me", headers={"X-Session-Id": "visitor-2"}).json()
        client.post(f"/api/carts/{guest['id']}/items", json={"product_id": product.id, "quantity": 2})

        r = client.post("/api/carts/merge", json={"session_id": "visitor-2", "user_id": 9})

        assert r.status_code == 200
        assert r.json()["user_id"] == 9
        assert r.json()["items"][0]["quantity"] == 2


class TestCategoryRoutes:
    def test_create_tree_and_path(self, client):
        root = client.post("/api/categories", json={"name": "Drinks"})
        assert root.status_code == 201
        child = client.post("/api/categories", json={"name": "Coffee", "parent_id": root.json()["id"]}).json()

        tree = client.get("/api/categories/tree").json()["tree"]
        assert tree[0]["name"] == "Drinks"
        assert tree[0]["children"][0]["name"] == "Coffee"

        path = client.get(f"/api/categories/{child['id']}/path").json()["path"]
        assert [c["name"] for c in path] == ["Drinks", "Coffee"]

    def test_cycle_is_bad_request(self, client, make_category):
        root = make_category("Drinks")
        child = make_category("Coffee", parent=root)
        r = client.patch(f"/api/categories/{root.id}", json={"parent_id": child.id})
        assert r.status_code == 400

    def test_explicit_null_parent_moves_to_root(self, client, make_category):
        root = make_category("Drinks")
        child = make_category("Coffee", parent=root)
        r = client.patch(f"/api/categories/{child.id}", json={"parent_id": None})
        assert r.status_code == 200
        assert r.json()["parent_id"] is None

    def test_delete_parent_is_conflict(self, client, make_category):
        root = make_category("Drinks")
        make_category("Coffee", parent=root)
        assert client.delete(f"/api/categories/{root.id}").status_code == 409

    def test_unknown_category(self, client):
        assert client.get("/api/categories/404").status_code == 404


class TestSubscriptionRoutes:
    def subscribe(self, client, product_id, address):
        return client.post("/api/subscriptions", json={
            "user_id": 3,
            "frequency": "monthly",
            "items": [{"product_id": product_id, "quantity": 1}],
            "shipping_address": address,
        })

    def test_create_and_list(self, client, make_product, address):
        product = make_product(price="15.00")
        r = self.subscribe(client, product.id, address)

        assert r.status_code == 201
        body = r.json()
        assert body["status"] == "active"
        assert body["amount"] == 15.0
        assert body["billing_address"]["city"] == "Portsmouth"

        listed = client.get("/api/subscriptions", headers={"X-User-Id": "3"}).json()
        assert [s["id"] for s in listed["subscriptions"]] == [body["id"]]

    def test_cancel_twice_is_conflict(self, client, make_product, address):
        product = make_product()
        sub = self.subscribe(client, product.id, address).json()

        assert client.patch(f"/api/subscriptions/{sub['id']}/cancel").status_code == 200
        r = client.patch(f"/api/subscriptions/{sub['id']}/cancel")
        assert r.status_code == 409
        assert "already cancelled" in r.json()["detail"]

    def test_removing_last_item_is_conflict(self, client, make_product, address):
        product = make_product()
        sub = self.subscribe(client, product.id, address).json()
        item_id = sub["items"][0]["id"]

        r = client.delete(f"/api/subscriptions/{sub['id']}/items/{item_id}")
        assert r.status_code == 409

    def test_missing_address_field_is_bad_request(self, client, make_product, address):
        product = make_product()
        del address["country"]
        assert self.subscribe(client, product.id, address).status_code == 400

    def test_unknown_subscription(self, client):
        assert client.patch("/api/subscriptions/404/pause").status_code == 404
