"""
订单API集成测试
测试订单相关的API端点和错误响应格式
"""

import pytest

from .conftest import auth_headers


API = "/api/v1"


@pytest.fixture
def counter_order(client, products, cashier_headers):
    response = client.post(f"{API}/orders", headers=cashier_headers, json={
        "channel": "counter",
        "items": [{"product_id": "p_empada"}, {"product_id": "p_caldo"}],
    })
    assert response.status_code == 200
    return response.json()["data"]


class TestOrdersAPI:
    """订单API测试"""

    def test_requires_authentication(self, client):
        response = client.get(f"{API}/orders")
        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTHENTICATION_REQUIRED"

    def test_invalid_token(self, client):
        response = client.get(f"{API}/orders", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_create_and_settle_in_cash(self, client, counter_order, cashier_headers):
        assert counter_order["total_cents"] == 2050
        assert counter_order["status"] == "new"

        response = client.post(f"{API}/orders/{counter_order['id']}/settle", headers=cashier_headers, json={
            "payment_type": "cash",
            "amount_tendered_cents": 2500,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["order"]["status"] == "paid"
        assert data["data"]["order"]["change_cents"] == 450
        assert data["data"]["order"]["session_id"] == "manual"
        assert data["data"]["table_released"] is True

    def test_insufficient_payment(self, client, counter_order, cashier_headers):
        response = client.post(f"{API}/orders/{counter_order['id']}/settle", headers=cashier_headers, json={
            "payment_type": "cash",
            "amount_tendered_cents": 2000,
        })

        assert response.status_code == 402
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "INSUFFICIENT_PAYMENT"
        assert body["details"]["missing_cents"] == 50

    def test_kitchen_cannot_settle(self, client, counter_order, kitchen_headers):
        response = client.post(f"{API}/orders/{counter_order['id']}/settle", headers=kitchen_headers, json={
            "payment_type": "card",
        })
        assert response.status_code == 403
        assert response.json()["error_code"] == "PERMISSION_DENIED"

    def test_kitchen_flow(self, client, products, cashier_headers, kitchen_headers):
        created = client.post(f"{API}/orders", headers=cashier_headers, json={
            "channel": "counter",
            "items": [{"product_id": "p_frango", "quantity": 2}],
        }).json()["data"]

        queue = client.get(f"{API}/orders/kitchen", headers=kitchen_headers).json()["data"]
        assert [o["id"] for o in queue] == [created["id"]]

        # 未出餐不能结账
        early = client.post(f"{API}/orders/{created['id']}/settle", headers=cashier_headers,
                            json={"payment_type": "card"})
        assert early.status_code == 409
        assert early.json()["error_code"] == "INVALID_STATE"

        for expected in ("preparing", "ready"):
            response = client.post(f"{API}/orders/{created['id']}/advance", headers=kitchen_headers)
            assert response.json()["data"]["status"] == expected

        ready = client.get(f"{API}/orders/ready", headers=kitchen_headers).json()["data"]
        assert [o["id"] for o in ready] == [created["id"]]

        paid = client.post(f"{API}/orders/{created['id']}/settle", headers=cashier_headers,
                           json={"payment_type": "instant_transfer"})
        assert paid.json()["data"]["order"]["amount_received_cents"] == 2200

    def test_table_conflict(self, client, products, tables, cashier_headers):
        payload = {"channel": "table", "table_number": 7, "items": [{"product_id": "p_coca"}]}
        first = client.post(f"{API}/orders", headers=cashier_headers, json=payload)
        second = client.post(f"{API}/orders", headers=cashier_headers, json=payload)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error_code"] == "CONFLICT"

    def test_edit_order(self, client, counter_order, cashier_headers):
        order_id = counter_order["id"]

        added = client.post(f"{API}/orders/{order_id}/items", headers=cashier_headers,
                            json={"product_id": "p_coca", "quantity": 2})
        assert added.json()["data"]["total_cents"] == 2050 + 1300

        changed = client.post(f"{API}/orders/{order_id}/quantity", headers=cashier_headers,
                              json={"product_id": "p_coca", "delta": -1})
        assert changed.json()["data"]["total_cents"] == 2050 + 650

        discounted = client.put(f"{API}/orders/{order_id}/discount", headers=cashier_headers,
                                json={"discount_cents": 700})
        assert discounted.json()["data"]["total_cents"] == 2000

    def test_cancel(self, client, counter_order, cashier_headers):
        response = client.post(f"{API}/orders/{counter_order['id']}/cancel", headers=cashier_headers,
                               json={"reason": "pedido duplicado"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "canceled"

        again = client.post(f"{API}/orders/{counter_order['id']}/cancel", headers=cashier_headers, json={})
        assert again.status_code == 409

    def test_validation_errors(self, client, products, cashier_headers):
        empty = client.post(f"{API}/orders", headers=cashier_headers, json={"channel": "counter", "items": []})
        assert empty.status_code == 400
        assert empty.json()["error_code"] == "VALIDATION_ERROR"

        bad_channel = client.post(f"{API}/orders", headers=cashier_headers, json={"channel": "drone"})
        assert bad_channel.status_code == 422

    def test_not_found(self, client, cashier_headers):
        response = client.get(f"{API}/orders/nope", headers=cashier_headers)
        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"

    def test_customer_sees_own_orders_only(self, client, products, customer_headers, other_customer):
        mine = client.post(f"{API}/orders", headers=customer_headers, json={
            "channel": "pickup", "items": [{"product_id": "p_coca"}],
        }).json()["data"]
        theirs = client.post(f"{API}/orders", headers=auth_headers(other_customer), json={
            "channel": "pickup", "items": [{"product_id": "p_coca"}],
        }).json()["data"]

        listed = client.get(f"{API}/orders", headers=customer_headers).json()["data"]
        assert [o["id"] for o in listed] == [mine["id"]]

        forbidden = client.get(f"{API}/orders/{theirs['id']}", headers=customer_headers)
        assert forbidden.status_code == 403

    def test_customer_discount_forbidden(self, client, products, customer_headers):
        response = client.post(f"{API}/orders", headers=customer_headers, json={
            "channel": "pickup", "items": [{"product_id": "p_empada"}], "discount_cents": 1250,
        })
        assert response.status_code == 403
        assert response.json()["details"]["action"] == "apply_discount"

    def test_list_limit_must_be_positive(self, client, counter_order, cashier_headers):
        response = client.get(f"{API}/orders", headers=cashier_headers, params={"limit": -1})
        assert response.status_code == 422

        limited = client.get(f"{API}/orders", headers=cashier_headers, params={"limit": 1})
        assert [o["id"] for o in limited.json()["data"]] == [counter_order["id"]]

    def test_receipt(self, client, counter_order, cashier_headers):
        response = client.get(f"{API}/orders/{counter_order['id']}/receipt", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["data"]["total_cents"] == 2050


class TestRegisterAPI:
    """班次、桌台、目录和报表API测试"""

    def test_session_open_close(self, client, products, cashier_headers):
        opened = client.post(f"{API}/sessions/open", headers=cashier_headers, json={"initial_amount_cents": 5000})
        assert opened.status_code == 200
        session_id = opened.json()["data"]["id"]

        duplicate = client.post(f"{API}/sessions/open", headers=cashier_headers, json={"initial_amount_cents": 0})
        assert duplicate.status_code == 409

        current = client.get(f"{API}/sessions/current", headers=cashier_headers).json()["data"]
        assert current["id"] == session_id

        order = client.post(f"{API}/orders", headers=cashier_headers, json={
            "channel": "counter", "items": [{"product_id": "p_coca"}],
            "payment_type": "card",
        }).json()["data"]
        assert order["session_id"] == session_id

        closed = client.post(f"{API}/sessions/close", headers=cashier_headers).json()["data"]
        assert closed["totals_by_payment"]["card"] == 650
        assert closed["expected_closing_cash_cents"] == 5000

        report = client.get(f"{API}/sessions/{session_id}/report", headers=cashier_headers).json()["data"]
        assert report["status"] == "closed"

        missing = client.post(f"{API}/sessions/close", headers=cashier_headers)
        assert missing.status_code == 409

    def test_tables(self, client, tables, kitchen_headers, customer_headers):
        listed = client.get(f"{API}/tables", headers=kitchen_headers).json()["data"]
        assert len(listed) == 12

        assert client.get(f"{API}/tables", headers=customer_headers).status_code == 403

    def test_consistency(self, client, tables, cashier_headers):
        report = client.get(f"{API}/tables/consistency", headers=cashier_headers).json()["data"]
        assert report["summary"]["status"] == "healthy"

        healed = client.post(f"{API}/tables/heal", headers=cashier_headers).json()["data"]
        assert healed["count"] == 0

    def test_catalog(self, client, products, admin, customer_headers):
        products_listed = client.get(f"{API}/catalog/products", headers=customer_headers).json()["data"]
        assert "p_old" not in [p["id"] for p in products_listed]

        denied = client.post(f"{API}/catalog/categories", headers=customer_headers, json={"name": "Combos"})
        assert denied.status_code == 403

        created = client.post(f"{API}/catalog/categories", headers=auth_headers(admin), json={"name": "Combos"})
        assert created.json()["data"]["display_order"] == 5

    def test_reports(self, client, counter_order, cashier_headers):
        client.post(f"{API}/orders/{counter_order['id']}/settle", headers=cashier_headers,
                    json={"payment_type": "card"})

        daily = client.get(f"{API}/reports/daily", headers=cashier_headers).json()["data"]
        assert daily[0]["total_cents"] == 2050

        categories = client.get(f"{API}/reports/categories", headers=cashier_headers).json()["data"]
        assert {row["category"] for row in categories} == {"Salgados", "Bebidas"}

    def test_cart_checkout(self, client, products, customer_headers):
        client.put(f"{API}/carts", headers=customer_headers, json={"items": [{"product_id": "p_coca"}]})

        response = client.post(f"{API}/carts/checkout", headers=customer_headers, json={"channel": "pickup"})

        assert response.status_code == 200
        assert response.json()["data"]["total_cents"] == 650
        assert client.get(f"{API}/carts", headers=customer_headers).json()["data"]["items"] == []

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
