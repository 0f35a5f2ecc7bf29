"""
HTTP surface tests for /api/sales and /api/sale-lines.

Checks status codes and the {"error", "kind", "details"} error body.
"""

import pytest


@pytest.fixture
def sale_payload(customer, user, product_a, product_b):
    return {
        "customer_id": customer.id,
        "user_id": user.id,
        "lines": [
            {"product_id": product_a.id, "quantity": 2},
            {"product_id": product_b.id, "quantity": 1},
        ],
    }


def _create(client, payload):
    response = client.post("/api/sales", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["sale"]


class TestSalesRoutes:
    def test_create_and_get(self, client, sale_payload):
        sale = _create(client, sale_payload)
        assert sale["total"] == "25.00"
        assert sale["status"] == "Pending"
        assert len(sale["lines"]) == 2
        assert sale["occurred_at"].endswith("Z")

        response = client.get(f"/api/sales/{sale['id']}")
        assert response.status_code == 200
        assert response.get_json()["sale"]["id"] == sale["id"]

    def test_get_unknown_is_404(self, client, db_session):
        response = client.get("/api/sales/999999")
        assert response.status_code == 404
        assert response.get_json()["kind"] == "SaleNotFound"

    def test_insufficient_stock_is_400_with_details(self, client, sale_payload):
        sale_payload["lines"][0]["quantity"] = 50
        response = client.post("/api/sales", json=sale_payload)
        body = response.get_json()
        assert response.status_code == 400
        assert body["kind"] == "InsufficientStock"
        assert body["details"][0]["available"] == 10
        assert body["details"][0]["requested"] == 50

    def test_oversized_price_is_400_not_500(self, client, sale_payload):
        sale_payload["lines"][0]["unit_price"] = "1e30"
        response = client.post("/api/sales", json=sale_payload)
        assert response.status_code == 400
        assert response.get_json()["kind"] == "ValidationError"

    def test_oversized_service_quantity_is_400_not_500(self, client, sale_payload, service):
        sale_payload["lines"] = [{"product_id": service.id, "quantity": 10**20}]
        response = client.post("/api/sales", json=sale_payload)
        assert response.status_code == 400
        assert response.get_json()["kind"] == "ValidationError"

    def test_unknown_customer_is_400(self, client, sale_payload):
        sale_payload["customer_id"] = 999999
        response = client.post("/api/sales", json=sale_payload)
        assert response.status_code == 400
        assert response.get_json()["kind"] == "ReferenceNotFound"

    def test_non_object_body(self, client, db_session):
        response = client.post("/api/sales", json=[1, 2])
        assert response.status_code == 400
        assert response.get_json()["kind"] == "ValidationError"

    def test_status_flow_moves_stock(self, client, sale_payload, product_a):
        sale = _create(client, sale_payload)

        response = client.patch(f"/api/sales/{sale['id']}/status", json={"status": "Completed"})
        assert response.status_code == 200
        assert response.get_json()["sale"]["status"] == "Completed"
        assert client.get(f"/api/products/{product_a.id}").get_json()["stock"] == 8

        response = client.patch(f"/api/sales/{sale['id']}/status", json={"status": "Cancelled"})
        assert response.status_code == 200
        assert client.get(f"/api/products/{product_a.id}").get_json()["stock"] == 10

    def test_invalid_status(self, client, sale_payload):
        sale = _create(client, sale_payload)
        response = client.patch(f"/api/sales/{sale['id']}/status", json={"status": "Paid"})
        assert response.status_code == 400
        assert response.get_json()["kind"] == "InvalidStatus"

        response = client.patch(f"/api/sales/{sale['id']}/status", json={})
        assert response.status_code == 400
        assert response.get_json()["kind"] == "ValidationError"

    def test_put_updates_notes_and_status(self, client, sale_payload):
        sale = _create(client, sale_payload)
        response = client.put(
            f"/api/sales/{sale['id']}",
            json={"notes": "Retirada", "status": "Completed"},
        )
        body = response.get_json()["sale"]
        assert response.status_code == 200
        assert body["notes"] == "Retirada"
        assert body["status"] == "Completed"

    def test_list_with_filters(self, client, sale_payload):
        _create(client, sale_payload)
        sale_payload["status"] = "Completed"
        completed = _create(client, sale_payload)

        response = client.get("/api/sales?status=Completed&limit=5")
        body = response.get_json()
        assert response.status_code == 200
        assert [s["id"] for s in body["items"]] == [completed["id"]]
        assert body["pagination"]["limit"] == 5

    def test_delete(self, client, sale_payload, product_a):
        sale_payload["status"] = "Completed"
        sale = _create(client, sale_payload)

        response = client.delete(f"/api/sales/{sale['id']}")
        assert response.status_code == 200
        assert response.get_json() == {"ok": True, "id": sale["id"]}
        assert client.get(f"/api/products/{product_a.id}").get_json()["stock"] == 10
        assert client.delete(f"/api/sales/{sale['id']}").status_code == 404

    def test_sale_lines_listing(self, client, sale_payload):
        sale = _create(client, sale_payload)
        response = client.get(f"/api/sales/{sale['id']}/lines")
        body = response.get_json()
        assert response.status_code == 200
        assert body["totals"] == {"line_count": 2, "total_value": "25.00"}


class TestSaleLineRoutes:
    def test_add_update_delete_return_sale_total(self, client, sale_payload, product_b):
        sale = _create(client, sale_payload)

        response = client.post("/api/sale-lines", json={
            "sale_id": sale["id"], "product_id": product_b.id, "quantity": 2,
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["sale_total"] == "35.00"
        line_id = body["line"]["id"]

        response = client.patch(f"/api/sale-lines/{line_id}", json={"unit_price": "1.00"})
        assert response.status_code == 200
        assert response.get_json()["sale_total"] == "27.00"

        response = client.delete(f"/api/sale-lines/{line_id}")
        assert response.status_code == 200
        assert response.get_json() == {"ok": True, "sale_id": sale["id"], "sale_total": "25.00"}

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/sale-lines", json={"quantity": 1})
        assert response.status_code == 400
        assert response.get_json()["kind"] == "ValidationError"

    def test_completed_sale_is_not_modifiable(self, client, sale_payload, product_b):
        sale_payload["status"] = "Completed"
        sale = _create(client, sale_payload)

        response = client.post("/api/sale-lines", json={
            "sale_id": sale["id"], "product_id": product_b.id, "quantity": 1,
        })
        assert response.status_code == 400
        assert response.get_json()["kind"] == "SaleNotModifiable"

    def test_unknown_line_is_404(self, client, db_session):
        assert client.get("/api/sale-lines/999999").status_code == 404
        response = client.delete("/api/sale-lines/999999")
        assert response.status_code == 404
        assert response.get_json()["kind"] == "LineNotFound"

    def test_list(self, client, sale_payload, product_a):
        sale = _create(client, sale_payload)
        response = client.get(f"/api/sale-lines?sale_id={sale['id']}&product_id={product_a.id}")
        body = response.get_json()
        assert response.status_code == 200
        assert len(body["items"]) == 1
        assert body["items"][0]["quantity"] == 2


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"
