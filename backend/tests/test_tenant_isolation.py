# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that one business can never see or change another
business's inventory.

Two businesses are created, each with one staff user and one product.
Every cross-tenant lookup must answer exactly like a missing row (404),
and listings must only ever contain the caller's own rows.

Test Coverage:
- Sessions: token resolves to the business it was issued for
- Products: cross-tenant read/write/delete blocked
- Ledger: cross-tenant movements blocked, history never leaks
- Purchase orders: cross-tenant read, status change and receiving blocked
- Stocktake: foreign product ids rejected
"""

from stockroom.models import StockMovement, Vendor
from stockroom.services import purchase_order_service
from stockroom.services.session_service import create_session, revoke_session, validate_session

from conftest import auth_headers


class TestSessions:
    """Bearer tokens carry the tenant."""

    def test_token_resolves_business(self, db_session, user_a, business_a):
        """A token maps to the user's own business."""
        _, token = create_session(user_a.id)
        context = validate_session(token)

        assert context.user.id == user_a.id
        assert context.business_id == business_a.id

    def test_missing_token_is_401(self, client, db_session, product_a):
        """No Authorization header is refused before any lookup."""
        response = client.get('/api/inventory/products')
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    def test_garbage_token_is_401(self, client, db_session):
        """An unknown token is refused."""
        response = client.get('/api/inventory/products', headers=auth_headers("not-a-token"))
        assert response.status_code == 401

    def test_revoked_token_is_401(self, client, db_session, token_a):
        """A revoked token stops working immediately."""
        assert revoke_session(token_a)
        response = client.get('/api/inventory/products', headers=auth_headers(token_a))
        assert response.status_code == 401


class TestProductIsolation:
    """Products of business B are invisible to business A."""

    def test_list_only_own_products(self, client, token_a, product_a, product_b):
        """Listing returns only the caller's products."""
        response = client.get('/api/inventory/products', headers=auth_headers(token_a))

        assert response.status_code == 200
        skus = [p["sku"] for p in response.get_json()["items"]]
        assert skus == ["SKU-001"]

    def test_read_other_business_product(self, client, token_a, product_b):
        """Reading a foreign product is a 404, not a 403."""
        response = client.get(f'/api/inventory/products/{product_b.id}', headers=auth_headers(token_a))
        assert response.status_code == 404

    def test_update_other_business_product(self, client, db_session, token_a, product_b):
        """Updating a foreign product is a 404 and changes nothing."""
        response = client.put(
            f'/api/inventory/products/{product_b.id}',
            json={"name": "Hijacked"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 404

        db_session.expire_all()
        assert product_b.name == "Massage Oil"

    def test_delete_other_business_product(self, client, db_session, token_a, product_b):
        """Deactivating a foreign product is a 404."""
        response = client.delete(f'/api/inventory/products/{product_b.id}', headers=auth_headers(token_a))
        assert response.status_code == 404

        db_session.expire_all()
        assert product_b.is_active is True


class TestLedgerIsolation:

    def test_movement_on_other_business_product(self, client, db_session, token_a, product_b):
        """A stock movement against a foreign product is a 404 with no write."""
        response = client.post(
            '/api/inventory/stock-adjustment',
            json={"product_id": product_b.id, "type": "usage", "quantity": 1},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 404

        db_session.expire_all()
        assert product_b.current_stock == 7
        assert db_session.query(StockMovement).filter_by(product_id=product_b.id).count() == 1

    def test_history_never_leaks(self, client, token_a, product_a, product_b):
        """Movement history of B is not returned to A, even when filtered by B's product."""
        own = client.get('/api/inventory/stock-movements', headers=auth_headers(token_a)).get_json()
        assert {m["product_id"] for m in own["items"]} == {product_a.id}

        foreign = client.get(
            f'/api/inventory/stock-movements?product_id={product_b.id}',
            headers=auth_headers(token_a),
        ).get_json()
        assert foreign["items"] == []

    def test_stocktake_with_foreign_product(self, client, db_session, token_a, product_a, product_b):
        """A count that includes a foreign product is rejected as a whole."""
        response = client.post(
            '/api/inventory/stocktake',
            json={"items": [
                {"product_id": product_a.id, "counted_quantity": 1},
                {"product_id": product_b.id, "counted_quantity": 1},
            ]},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 404

        db_session.expire_all()
        assert product_a.current_stock == 20


class TestPurchaseOrderIsolation:

    def _order_for_b(self, db_session, business_b, product_b):
        vendor = Vendor(business_id=business_b.id, name="Spa Wholesale", status="active")
        db_session.add(vendor)
        db_session.commit()
        order = purchase_order_service.create_purchase_order(
            business_id=business_b.id,
            vendor_id=vendor.id,
            items=[{"product_id": product_b.id, "quantity": 3}],
        )
        for status in ("sent", "confirmed"):
            purchase_order_service.change_status(business_id=business_b.id, order_id=order.id, status=status)
        return order

    def test_read_other_business_order(self, client, db_session, token_a, business_b, product_b):
        """A foreign order is a 404 and absent from listings."""
        order = self._order_for_b(db_session, business_b, product_b)

        response = client.get(f'/api/inventory/purchase-orders/{order.id}', headers=auth_headers(token_a))
        assert response.status_code == 404

        listing = client.get('/api/inventory/purchase-orders', headers=auth_headers(token_a)).get_json()
        assert listing["items"] == []

    def test_receive_other_business_order(self, client, db_session, token_a, business_b, product_b):
        """Receiving against a foreign order is a 404 and moves no stock."""
        order = self._order_for_b(db_session, business_b, product_b)
        item_id = order.items[0].id

        response = client.post(
            f'/api/inventory/purchase-orders/{order.id}/receive',
            json={"items": [{"item_id": item_id, "received_quantity": 3}]},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 404

        db_session.expire_all()
        assert product_b.current_stock == 7

    def test_cancel_other_business_order(self, client, db_session, token_a, business_b, product_b):
        """Cancelling a foreign order is a 404."""
        order = self._order_for_b(db_session, business_b, product_b)

        response = client.put(
            f'/api/inventory/purchase-orders/{order.id}/status',
            json={"status": "cancelled"},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 404

        db_session.expire_all()
        assert order.status == "confirmed"

    def test_order_with_foreign_vendor(self, client, db_session, token_a, business_b, product_a):
        """A business cannot order from another business's vendor."""
        vendor = Vendor(business_id=business_b.id, name="Spa Wholesale", status="active")
        db_session.add(vendor)
        db_session.commit()

        response = client.post(
            '/api/inventory/purchase-orders',
            json={"vendor_id": vendor.id, "items": [{"product_id": product_a.id, "quantity": 1}]},
            headers=auth_headers(token_a),
        )
        assert response.status_code == 404
