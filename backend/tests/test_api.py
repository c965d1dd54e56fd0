# Overview: HTTP-level tests for the inventory API.

"""
Exercises the /api/inventory routes end to end through the Flask test
client: status codes, response shapes, and that every write lands in the
stock ledger.
"""

from stockroom.models import Product, StockMovement

from conftest import auth_headers, make_product


def _post(client, token, url, body):
    return client.post(url, json=body, headers=auth_headers(token))


class TestProductsApi:

    def test_create_with_initial_stock(self, client, db_session, token_a, business_a, category_a):
        """Opening stock is returned on the product and recorded as one movement."""
        response = _post(client, token_a, '/api/inventory/products', {
            "sku": "CND-250",
            "name": "Conditioner 250ml",
            "category_id": category_a.id,
            "cost_price_cents": 18050,
            "minimum_stock": "2",
            "tags": ["hair", " retail "],
            "initial_stock": "12.5",
        })

        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["current_stock"] == "12.5"
        assert product["category_name"] == "Hair Care"
        assert product["cost_price_cents"] == 18050
        assert product["cost_price_formatted"] == "₹180.50"
        assert product["tags"] == ["hair", "retail"]

        movements = db_session.query(StockMovement).filter_by(product_id=product["id"]).all()
        assert [m.reason for m in movements] == ["Initial stock"]

    def test_create_missing_required_fields(self, client, db_session, token_a):
        response = _post(client, token_a, '/api/inventory/products', {"name": "No SKU"})
        assert response.status_code == 400
        assert "sku" in response.get_json()["error"]

    def test_create_duplicate_sku_is_conflict(self, client, token_a, product_a):
        response = _post(client, token_a, '/api/inventory/products', {"sku": "SKU-001", "name": "Dup"})
        assert response.status_code == 409

    def test_create_rejects_current_stock(self, client, token_a):
        response = _post(client, token_a, '/api/inventory/products', {
            "sku": "X", "name": "X", "current_stock": 5,
        })
        assert response.status_code == 400

    def test_update_rejects_current_stock(self, client, db_session, token_a, product_a):
        """Stock is never editable through the catalog."""
        response = client.put(
            f'/api/inventory/products/{product_a.id}',
            json={"current_stock": 999},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 400

        db_session.expire_all()
        assert product_a.current_stock == 20

    def test_update_fields(self, client, token_a, product_a):
        response = client.put(
            f'/api/inventory/products/{product_a.id}',
            json={"reorder_point": "8", "brand": "Lumen"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 200
        body = response.get_json()["product"]
        assert body["reorder_point"] == "8"
        assert body["brand"] == "Lumen"

    def test_detail_and_soft_delete(self, client, db_session, token_a, product_a):
        detail = client.get(f'/api/inventory/products/{product_a.id}', headers=auth_headers(token_a))
        assert detail.status_code == 200
        assert len(detail.get_json()["product"]["recent_movements"]) == 1

        response = client.delete(f'/api/inventory/products/{product_a.id}', headers=auth_headers(token_a))
        assert response.status_code == 200
        assert response.get_json()["product"]["is_active"] is False

        db_session.expire_all()
        assert db_session.get(Product, product_a.id) is not None

    def test_list_filters(self, client, db_session, token_a, business_a, product_a):
        make_product(business_a, sku="EMPTY", name="Empty bottle")

        out = client.get('/api/inventory/products?stock_status=out', headers=auth_headers(token_a)).get_json()
        assert [p["sku"] for p in out["items"]] == ["EMPTY"]

        bad = client.get('/api/inventory/products?is_active=maybe', headers=auth_headers(token_a))
        assert bad.status_code == 400


class TestStockAdjustmentApi:

    def test_usage(self, client, db_session, token_a, user_a, product_a):
        response = _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id,
            "type": "usage",
            "quantity": "2.5",
            "reason": "Colour service",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["previous_stock"] == "20"
        assert body["new_stock"] == "17.5"
        assert body["movement"]["type"] == "usage"
        assert body["movement"]["performed_by_user_id"] == user_a.id
        assert body["movement"]["total_cost_cents"] == 62500
        assert body["product"]["current_stock"] == "17.5"

    def test_adjustment_sets_absolute_level(self, client, token_a, product_a):
        body = _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id, "type": "adjustment", "quantity": 15,
        }).get_json()

        assert body["movement"]["previous_stock"] == "20"
        assert body["movement"]["new_stock"] == "15"

    def test_missing_fields(self, client, token_a):
        response = _post(client, token_a, '/api/inventory/stock-adjustment', {"type": "usage"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Missing required fields: product_id, quantity"

    def test_non_positive_quantity(self, client, token_a, product_a):
        response = _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id, "type": "receive", "quantity": 0,
        })
        assert response.status_code == 400

    def test_unknown_type(self, client, token_a, product_a):
        response = _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id, "type": "theft", "quantity": 1,
        })
        assert response.status_code == 400

    def test_transfer_beyond_stock_is_conflict(self, client, token_a, product_a):
        response = _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id, "type": "transfer", "quantity": 25,
        })
        assert response.status_code == 409

    def test_unknown_product(self, client, token_a):
        response = _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": 424242, "type": "receive", "quantity": 1,
        })
        assert response.status_code == 404

    def test_movement_history_filters(self, client, token_a, product_a):
        _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id, "type": "damage", "quantity": 1,
        })

        everything = client.get('/api/inventory/stock-movements', headers=auth_headers(token_a)).get_json()
        assert [m["type"] for m in everything["items"]] == ["damage", "receive"]

        damage = client.get('/api/inventory/stock-movements?type=damage', headers=auth_headers(token_a)).get_json()
        assert damage["count"] == 1

        old = client.get(
            '/api/inventory/stock-movements?end_date=2000-01-01',
            headers=auth_headers(token_a),
        ).get_json()
        assert old["items"] == []

        bad = client.get('/api/inventory/stock-movements?start_date=yesterday', headers=auth_headers(token_a))
        assert bad.status_code == 400


class TestPurchaseOrderApi:

    def test_full_lifecycle(self, client, db_session, token_a, vendor_a, product_a, business_a):
        """draft -> sent -> confirmed -> partial receipt -> received."""
        second = make_product(business_a, sku="SKU-002", name="Serum", cost_price_cents=4000)

        created = _post(client, token_a, '/api/inventory/purchase-orders', {
            "vendor_id": vendor_a.id,
            "items": [
                {"product_id": product_a.id, "quantity": 10},
                {"product_id": second.id, "quantity": 5, "unit_cost_cents": 3500},
            ],
            "expected_delivery_date": "2026-11-01",
            "shipping_cents": 500,
        })
        assert created.status_code == 201
        order = created.get_json()["purchase_order"]
        assert order["status"] == "draft"
        assert order["subtotal_cents"] == 267500
        assert order["total_cents"] == 268000
        assert order["expected_delivery_date"] == "2026-11-01"
        items = {i["product_id"]: i for i in order["items"]}

        for status in ("sent", "confirmed"):
            response = client.put(
                f'/api/inventory/purchase-orders/{order["id"]}/status',
                json={"status": status},
                headers=auth_headers(token_a),
            )
            assert response.status_code == 200
            assert response.get_json()["purchase_order"]["status"] == status

        partial = _post(client, token_a, f'/api/inventory/purchase-orders/{order["id"]}/receive', {
            "items": [{"item_id": items[product_a.id]["id"], "received_quantity": 4}],
        })
        assert partial.status_code == 200
        body = partial.get_json()
        assert body["purchase_order"]["status"] == "confirmed"
        assert body["received"][0]["new_stock"] == "24"

        rest = _post(client, token_a, f'/api/inventory/purchase-orders/{order["id"]}/receive', {
            "items": [
                {"item_id": items[product_a.id]["id"], "received_quantity": 6},
                {"item_id": items[second.id]["id"], "received_quantity": 5, "batch_number": "SER-1"},
            ],
        })
        assert rest.status_code == 200
        final = rest.get_json()["purchase_order"]
        assert final["status"] == "received"
        assert final["actual_delivery_date"] is not None
        assert {i["received_quantity"] for i in final["items"]} == {"10", "5"}

        detail = client.get(f'/api/inventory/purchase-orders/{order["id"]}', headers=auth_headers(token_a))
        assert detail.get_json()["purchase_order"]["vendor"]["name"] == "Beauty Supplies Co"

        db_session.expire_all()
        assert db_session.get(Product, product_a.id).current_stock == 30
        assert db_session.get(Product, second.id).current_stock == 5

    def test_received_straight_from_draft_is_conflict(self, client, token_a, vendor_a, product_a):
        order = _post(client, token_a, '/api/inventory/purchase-orders', {
            "vendor_id": vendor_a.id,
            "items": [{"product_id": product_a.id, "quantity": 1}],
        }).get_json()["purchase_order"]

        response = client.put(
            f'/api/inventory/purchase-orders/{order["id"]}/status',
            json={"status": "received"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 409

    def test_receive_draft_is_conflict(self, client, token_a, vendor_a, product_a):
        order = _post(client, token_a, '/api/inventory/purchase-orders', {
            "vendor_id": vendor_a.id,
            "items": [{"product_id": product_a.id, "quantity": 1}],
        }).get_json()["purchase_order"]

        response = _post(client, token_a, f'/api/inventory/purchase-orders/{order["id"]}/receive', {
            "items": [{"item_id": order["items"][0]["id"], "received_quantity": 1}],
        })
        assert response.status_code == 409

    def test_missing_vendor(self, client, token_a, product_a):
        response = _post(client, token_a, '/api/inventory/purchase-orders', {
            "items": [{"product_id": product_a.id, "quantity": 1}],
        })
        assert response.status_code == 400


class TestStocktakeApi:

    def test_reconcile(self, client, db_session, token_a, product_a):
        response = _post(client, token_a, '/api/inventory/stocktake', {
            "items": [{"product_id": product_a.id, "counted_quantity": 18}],
            "notes": "Friday count",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["adjustments_made"] == 1
        assert body["adjustments"][0]["discrepancy"] == "-2"
        assert body["stocktake"]["notes"] == "Friday count"
        assert body["stocktake"]["lines"][0]["expected_quantity"] == "20"

        db_session.expire_all()
        assert product_a.current_stock == 18

    def test_empty_items(self, client, token_a):
        response = _post(client, token_a, '/api/inventory/stocktake', {"items": []})
        assert response.status_code == 400


class TestAdvisorAndDashboards:

    def test_reorder_suggestions(self, client, token_a, business_a, product_a):
        make_product(business_a, sku="EMPTY", name="Empty bottle")

        body = client.get(
            '/api/inventory/reorder-suggestions?default_quantity=4',
            headers=auth_headers(token_a),
        ).get_json()
        assert body["count"] == 1
        assert body["items"][0]["sku"] == "EMPTY"
        assert body["items"][0]["urgency"] == "critical"
        assert body["items"][0]["suggested_quantity"] == "4"

        bad = client.get('/api/inventory/reorder-suggestions?default_quantity=0', headers=auth_headers(token_a))
        assert bad.status_code == 400

    def test_stats(self, client, token_a, business_a, vendor_a, product_a):
        make_product(business_a, sku="EMPTY", name="Empty bottle")

        stats = client.get('/api/inventory/stats', headers=auth_headers(token_a)).get_json()["stats"]
        assert stats["total_products"] == 2
        assert stats["active_products"] == 2
        assert stats["total_stock_value_cents"] == 500000
        assert stats["total_stock_value_formatted"] == "₹5,000.00"
        assert stats["out_of_stock_count"] == 1
        assert stats["low_stock_count"] == 0
        assert stats["vendor_count"] == 1
        assert stats["pending_orders_count"] == 0

    def test_analytics(self, client, token_a, product_a):
        _post(client, token_a, '/api/inventory/stock-adjustment', {
            "product_id": product_a.id, "type": "usage", "quantity": 5,
        })

        body = client.get('/api/inventory/analytics?period=week', headers=auth_headers(token_a)).get_json()
        assert body["trend_summary"] == {"stock_in": "20", "stock_out": "5", "turnover_rate": 0.3}
        assert len(body["stock_trends"]) == 7
        assert len(body["recent_changes"]) == 2
        assert body["top_products"][0]["product_id"] == product_a.id
        assert body["top_products"][0]["units"] == "5"

        bad = client.get('/api/inventory/analytics?period=year', headers=auth_headers(token_a))
        assert bad.status_code == 400


class TestCatalogSupportApi:

    def test_category_crud(self, client, token_a, business_a):
        created = _post(client, token_a, '/api/inventory/categories', {"name": "Nails", "sort_order": 2})
        assert created.status_code == 201
        category_id = created.get_json()["category"]["id"]

        listing = client.get('/api/inventory/categories', headers=auth_headers(token_a)).get_json()
        assert [c["name"] for c in listing["items"]] == ["Nails"]

        make_product(business_a, sku="NL-1", name="Top coat", category_id=category_id)
        blocked = client.delete(f'/api/inventory/categories/{category_id}', headers=auth_headers(token_a))
        assert blocked.status_code == 409

    def test_vendor_crud(self, client, token_a):
        created = _post(client, token_a, '/api/inventory/vendors', {"name": "Polish Direct", "email": "hi@pd.test"})
        assert created.status_code == 201
        vendor = created.get_json()["vendor"]
        assert vendor["status"] == "active"

        updated = client.put(
            f'/api/inventory/vendors/{vendor["id"]}',
            json={"status": "suspended"},
            headers=auth_headers(token_a),
        )
        assert updated.status_code == 200
        assert updated.get_json()["vendor"]["status"] == "suspended"

        listing = client.get('/api/inventory/vendors?status=suspended', headers=auth_headers(token_a)).get_json()
        assert [v["name"] for v in listing["items"]] == ["Polish Direct"]
        assert listing["items"][0]["order_count"] == 0


def test_health(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_cors_header_for_allowed_origin(client, db_session):
    response = client.get('/health', headers={"Origin": "http://localhost:5173"})
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    other = client.get('/health', headers={"Origin": "http://evil.test"})
    assert "Access-Control-Allow-Origin" not in other.headers
