"""HTTP tests for the order endpoints."""

import pytest

from database import ORDER


def place(client, products, **extra):
    return client.post("/api/orders", json={"userId": "user-1", "products": products, **extra})


class TestCreateOrder:
    def test_created(self, client, store, add_product):
        add_product("P1", price=10.0, stock=5)

        response = place(client, [{"productId": "P1", "quantity": 2}])

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["message"]
        assert data["order"]["total"] == 20.0
        assert data["order"]["userId"] == "user-1"
        assert data["order"]["status"] == "pending"
        assert data["order"]["paymentMethod"] == "cash_on_delivery"
        assert data["order"]["products"] == [{"productId": "P1", "quantity": 2}]
        assert data["stockUpdates"][0]["success"] is True
        assert store.get_product("P1")["stock"] == 3

    def test_insufficient_stock(self, client, store, add_product):
        add_product("P1", name="Lamp", stock=5)

        response = place(client, [{"productId": "P1", "quantity": 10}])

        assert response.status_code == 400
        assert response.json()["error"] == "Not enough stock for product Lamp. Only 5 units available."
        assert store.list_orders() == []
        assert store.get_product("P1")["stock"] == 5

    def test_unknown_product(self, client, store):
        response = place(client, [{"productId": "ghost", "quantity": 1}])

        assert response.status_code == 404
        assert response.json()["error"] == "Product ghost not found"
        assert store.list_orders() == []

    @pytest.mark.parametrize("body", [
        {"products": [{"productId": "P1"}]},
        {"userId": "user-1", "products": []},
        {"userId": "user-1"},
    ])
    def test_missing_fields(self, client, add_product, body):
        add_product("P1")
        response = client.post("/api/orders", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields"

    @pytest.mark.parametrize("quantity", [0, -3, "abc", None])
    def test_quantity_coerces_to_one(self, client, store, add_product, quantity):
        add_product("P1", price=4.0, stock=5)

        response = place(client, [{"productId": "P1", "quantity": quantity}])

        assert response.status_code == 201
        order = response.json()["order"]
        assert order["products"][0]["quantity"] == 1
        assert order["total"] == 4.0
        assert store.get_product("P1")["stock"] == 4

    def test_supplied_total_is_echoed(self, client, add_product):
        add_product("P1", price=10.0, stock=5)

        response = place(client, [{"productId": "P1", "quantity": 2}], total=15)

        assert response.status_code == 201
        assert response.json()["order"]["total"] == 15

    def test_zero_total_uses_computed_total(self, client, add_product):
        add_product("P1", price=10.0, stock=5)

        response = place(client, [{"productId": "P1", "quantity": 2}], total=0)

        assert response.status_code == 201
        assert response.json()["order"]["total"] == 20.0

    def test_repeated_product_cannot_oversell(self, client, store, add_product):
        add_product("P1", name="Lamp", stock=5)

        response = place(client, [{"productId": "P1", "quantity": 4}, {"productId": "P1", "quantity": 4}])

        assert response.status_code == 400
        assert response.json()["error"] == "Not enough stock for product Lamp. Only 5 units available."
        assert store.list_orders() == []
        assert store.get_product("P1")["stock"] == 5

    def test_invalid_payment_method(self, client, add_product):
        add_product("P1")

        response = place(client, [{"productId": "P1"}], paymentMethod="barter")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_insert_failure(self, client, store, add_product):
        add_product("P1", stock=5)
        store.failing_inserts.add(ORDER)

        response = place(client, [{"productId": "P1"}])

        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to create order in database",
            "details": "simulated outage",
        }
        assert store.get_product("P1")["stock"] == 5

    def test_stock_failure_still_succeeds(self, client, store, add_product):
        add_product("P1", stock=5)
        store.failing_updates.add("P1")

        response = place(client, [{"productId": "P1"}])

        assert response.status_code == 201
        update = response.json()["stockUpdates"][0]
        assert update["productId"] == "P1"
        assert update["success"] is False


class TestStatus:
    @pytest.fixture
    def order_id(self, client, add_product):
        add_product("P1", stock=5)
        return place(client, [{"productId": "P1"}]).json()["order"]["id"]

    def test_pending_to_shipped_directly(self, client, admin_headers, order_id):
        response = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "shipped"

        fetched = client.get(f"/api/orders/{order_id}")
        assert fetched.status_code == 200
        assert fetched.json()["status"] == "shipped"

    def test_patch(self, client, admin_headers, order_id):
        response = client.patch(f"/api/orders/{order_id}", json={"status": "delivered"}, headers=admin_headers)
        assert response.status_code == 200
        assert client.get(f"/api/orders/{order_id}").json()["status"] == "delivered"

    @pytest.mark.parametrize("status", ["cancelled", 7, ""])
    def test_invalid_status(self, client, admin_headers, order_id, status):
        response = client.patch(f"/api/orders/{order_id}", json={"status": status}, headers=admin_headers)
        assert response.status_code == 400

    def test_unknown_order(self, client, admin_headers):
        response = client.put("/api/orders/missing/status", json={"status": "shipped"}, headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Order not found"

    def test_requires_admin(self, client, customer_headers, order_id):
        assert client.patch(f"/api/orders/{order_id}", json={"status": "shipped"}).status_code == 401
        response = client.patch(f"/api/orders/{order_id}", json={"status": "shipped"}, headers=customer_headers)
        assert response.status_code == 403
        assert response.json() == {"error": "Admin only"}


class TestListing:
    def test_filter_by_user(self, client, add_product):
        add_product("P1", stock=10)
        place(client, [{"productId": "P1"}])
        client.post("/api/orders", json={"userId": "user-2", "products": [{"productId": "P1"}]})

        assert len(client.get("/api/orders").json()) == 2
        mine = client.get("/api/orders", params={"userId": "user-2"}).json()
        assert [o["userId"] for o in mine] == ["user-2"]

    def test_user_orders_uses_token(self, client, customer_headers, add_product):
        add_product("P1", stock=10)
        place(client, [{"productId": "P1"}])
        client.post("/api/orders", json={"userId": "someone-else", "products": [{"productId": "P1"}]})

        response = client.get("/api/user-orders", headers=customer_headers)

        assert response.status_code == 200
        assert [o["userId"] for o in response.json()] == ["user-1"]

    def test_user_orders_requires_token(self, client):
        assert client.get("/api/user-orders").status_code == 401

    def test_get_missing(self, client):
        response = client.get("/api/orders/nope")
        assert response.status_code == 404

    def test_delete(self, client, admin_headers, add_product):
        add_product("P1", stock=10)
        order_id = place(client, [{"productId": "P1"}]).json()["order"]["id"]

        assert client.delete(f"/api/orders/{order_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/orders/{order_id}").status_code == 404
        assert client.delete(f"/api/orders/{order_id}", headers=admin_headers).status_code == 404
