"""
Catalog, customer and user endpoints.
"""

from nexo.services import sales_service


class TestProducts:
    def test_create_product_requires_stock(self, client, db_session):
        response = client.post("/api/products", json={"name": "Cabo HDMI", "price": "19.90"})
        assert response.status_code == 400
        assert "stock" in response.get_json()["error"]

    def test_create_product_and_service(self, client, db_session):
        response = client.post("/api/products", json={"name": "Cabo HDMI", "price": "19.90", "stock": 4})
        assert response.status_code == 201
        product = response.get_json()
        assert product["price"] == "19.90"
        assert product["kind"] == "Product"
        assert product["stock"] == 4

        response = client.post("/api/products", json={
            "name": "Formatacao", "price": 80, "kind": "Service", "stock": 7,
        })
        assert response.status_code == 201
        assert response.get_json()["stock"] is None

    def test_invalid_kind_and_price(self, client, db_session):
        response = client.post("/api/products", json={"name": "X", "price": "1", "stock": 1, "kind": "Bundle"})
        assert response.status_code == 400
        response = client.post("/api/products", json={"name": "X", "price": "-1", "stock": 1})
        assert response.status_code == 400

    def test_name_is_unique_case_insensitively(self, client, product_a):
        response = client.post("/api/products", json={"name": "produto a", "price": "1.00", "stock": 1})
        assert response.status_code == 409

    def test_stock_is_not_editable(self, client, product_a):
        response = client.patch(f"/api/products/{product_a.id}", json={"stock": 99})
        assert response.status_code == 400

    def test_update_price_and_status(self, client, product_a):
        response = client.put(f"/api/products/{product_a.id}", json={"price": "12.345", "status": "Inactive"})
        body = response.get_json()
        assert response.status_code == 200
        assert body["price"] == "12.35"
        assert body["status"] == "Inactive"
        assert body["stock"] == 10

    def test_update_unknown(self, client, db_session):
        assert client.put("/api/products/999999", json={"price": "1"}).status_code == 404

    def test_list_filters(self, client, product_a, product_b, service):
        body = client.get("/api/products?kind=Product&max_price=6").get_json()
        assert [p["id"] for p in body["items"]] == [product_b.id]

        body = client.get("/api/products?search=instal").get_json()
        assert [p["id"] for p in body["items"]] == [service.id]

        assert client.get("/api/products?kind=Gadget").status_code == 400

    def test_delete_blocked_while_referenced(self, client, customer, user, product_a, product_b):
        sales_service.create_sale(
            customer_id=customer.id, user_id=user.id,
            lines=[{"product_id": product_a.id, "quantity": 1}],
        )
        assert client.delete(f"/api/products/{product_a.id}").status_code == 409
        assert client.delete(f"/api/products/{product_b.id}").status_code == 200
        assert client.get(f"/api/products/{product_b.id}").status_code == 404


class TestCustomers:
    def test_crud(self, client, db_session):
        response = client.post("/api/customers", json={"name": "Ana", "email": "ana@example.com"})
        assert response.status_code == 201
        customer_id = response.get_json()["id"]

        response = client.patch(f"/api/customers/{customer_id}", json={"phone": "11 99999-0000"})
        assert response.status_code == 200
        assert response.get_json()["phone"] == "11 99999-0000"

        body = client.get("/api/customers?search=ana").get_json()
        assert [c["id"] for c in body["items"]] == [customer_id]

        assert client.delete(f"/api/customers/{customer_id}").status_code == 200
        assert client.get(f"/api/customers/{customer_id}").status_code == 404

    def test_name_required(self, client, db_session):
        assert client.post("/api/customers", json={"email": "x@example.com"}).status_code == 400

    def test_delete_blocked_with_sales(self, client, customer, user, product_a):
        sales_service.create_sale(
            customer_id=customer.id, user_id=user.id,
            lines=[{"product_id": product_a.id, "quantity": 1}],
        )
        assert client.delete(f"/api/customers/{customer.id}").status_code == 409


class TestUsers:
    def test_create_and_duplicate_email(self, client, db_session):
        response = client.post("/api/users", json={"name": "Caixa", "email": "Caixa@Nexo.local", "role": "Operator"})
        assert response.status_code == 201
        assert response.get_json()["email"] == "caixa@nexo.local"

        response = client.post("/api/users", json={"name": "Outro", "email": "caixa@nexo.local"})
        assert response.status_code == 409

    def test_invalid_role(self, client, db_session):
        response = client.post("/api/users", json={"name": "X", "email": "x@nexo.local", "role": "Root"})
        assert response.status_code == 400

    def test_delete_blocked_with_sales(self, client, customer, user, product_a):
        sales_service.create_sale(
            customer_id=customer.id, user_id=user.id,
            lines=[{"product_id": product_a.id, "quantity": 1}],
        )
        assert client.delete(f"/api/users/{user.id}").status_code == 409
        assert client.patch(f"/api/users/{user.id}", json={"status": "Inactive"}).status_code == 200
