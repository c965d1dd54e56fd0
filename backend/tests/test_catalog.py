"""
Catalog service tests: products and categories.

SKU uniqueness is per business and includes inactive products. Stock is never
writable through the catalog; opening stock becomes a ledger movement.
"""

from decimal import Decimal

import pytest

from stockroom.models import Category, Product, StockMovement
from stockroom.services import catalog_service
from stockroom.services.catalog_service import (
    CategoryInUseError,
    CategoryNotFoundError,
    DuplicateSkuError,
)
from stockroom.services.inventory_service import ProductNotFoundError
from stockroom.services.vendor_service import VendorNotFoundError
from stockroom.validation import ValidationError

from conftest import make_product


class TestSkuUniqueness:
    """SKU collisions inside one business are rejected; across businesses they are fine."""

    def test_duplicate_sku_same_business(self, db_session, business_a, product_a):
        with pytest.raises(DuplicateSkuError):
            make_product(business_a, sku=product_a.sku, name="Another shampoo")

        assert db_session.query(Product).filter_by(business_id=business_a.id).count() == 1

    def test_inactive_product_still_holds_sku(self, db_session, business_a, product_a):
        catalog_service.deactivate_product(business_id=business_a.id, product_id=product_a.id)

        with pytest.raises(DuplicateSkuError):
            make_product(business_a, sku="SKU-001")

    def test_same_sku_in_other_business(self, db_session, business_a, business_b, product_a):
        other = make_product(business_b, sku="SKU-001", name="Shampoo 500ml")
        assert other.id != product_a.id
        assert other.business_id == business_b.id

    def test_update_into_existing_sku(self, db_session, business_a, product_a):
        second = make_product(business_a, sku="SKU-002", name="Conditioner")

        with pytest.raises(DuplicateSkuError):
            catalog_service.update_product(
                business_id=business_a.id,
                product_id=second.id,
                patch={"sku": "SKU-001"},
            )

    def test_update_keeping_own_sku(self, db_session, business_a, product_a):
        updated = catalog_service.update_product(
            business_id=business_a.id,
            product_id=product_a.id,
            patch={"sku": "SKU-001", "name": "Shampoo 1L"},
        )
        assert updated.name == "Shampoo 1L"


class TestProductLifecycle:

    def test_initial_stock_zero_writes_no_movement(self, db_session, business_a):
        product = make_product(business_a, initial_stock=0)

        assert product.current_stock == 0
        assert db_session.query(StockMovement).filter_by(product_id=product.id).count() == 0

    def test_initial_stock_records_creator(self, db_session, product_a, user_a):
        movement = db_session.query(StockMovement).filter_by(product_id=product_a.id).one()
        assert movement.performed_by_user_id == user_a.id
        assert movement.unit_cost_cents == 25000
        assert movement.total_cost_cents == 500000

    def test_initial_stock_on_untracked_product_rejected(self, db_session, business_a):
        with pytest.raises(ValidationError):
            make_product(business_a, sku="SVC-1", initial_stock=3, track_stock=False)

    def test_current_stock_not_writable_on_create(self, db_session, business_a):
        with pytest.raises(ValidationError):
            make_product(business_a, current_stock=Decimal("50"))

    def test_current_stock_not_writable_on_update(self, db_session, business_a, product_a):
        with pytest.raises(ValidationError):
            catalog_service.update_product(
                business_id=business_a.id,
                product_id=product_a.id,
                patch={"current_stock": Decimal("99")},
            )
        assert product_a.current_stock == 20

    def test_maximum_below_minimum_rejected(self, db_session, business_a, product_a):
        with pytest.raises(ValidationError):
            catalog_service.update_product(
                business_id=business_a.id,
                product_id=product_a.id,
                patch={"maximum_stock": Decimal("2")},
            )

    def test_update_other_business_product(self, db_session, business_b, product_a):
        with pytest.raises(ProductNotFoundError):
            catalog_service.update_product(
                business_id=business_b.id,
                product_id=product_a.id,
                patch={"name": "Hijacked"},
            )

    def test_vendor_from_other_business_rejected(self, db_session, business_a, business_b, vendor_a):
        with pytest.raises(VendorNotFoundError):
            make_product(business_b, sku="X-1", vendor_id=vendor_a.id)

    def test_deactivate_keeps_history(self, db_session, business_a, product_a):
        product = catalog_service.deactivate_product(business_id=business_a.id, product_id=product_a.id)

        assert product.is_active is False
        assert db_session.get(Product, product_a.id) is not None
        assert db_session.query(StockMovement).filter_by(product_id=product_a.id).count() == 1

    def test_product_detail_includes_recent_movements(self, db_session, business_a, product_a):
        detail = catalog_service.get_product_detail(business_a.id, product_a.id)

        assert detail["current_stock"] == "20"
        assert detail["stock_status"] == "good"
        assert detail["cost_price_formatted"] == "₹250.00"
        assert len(detail["recent_movements"]) == 1
        assert detail["recent_movements"][0]["reason"] == "Initial stock"


class TestStockStatus:
    """stock_status is derived from levels and filterable in listings."""

    @pytest.fixture
    def shelf(self, db_session, business_a):
        return {
            "out": make_product(business_a, sku="OUT", name="Out", minimum_stock=Decimal("2")),
            "low": make_product(business_a, sku="LOW", name="Low", initial_stock=2, minimum_stock=Decimal("2")),
            "good": make_product(business_a, sku="GOOD", name="Good", initial_stock=5, minimum_stock=Decimal("2")),
            "over": make_product(
                business_a,
                sku="OVER",
                name="Over",
                initial_stock=12,
                minimum_stock=Decimal("2"),
                maximum_stock=Decimal("10"),
            ),
        }

    def test_derived_status(self, shelf):
        assert {key: p.stock_status for key, p in shelf.items()} == {
            "out": "out",
            "low": "low",
            "good": "good",
            "over": "overstock",
        }

    @pytest.mark.parametrize("status, sku", [("out", "OUT"), ("low", "LOW"), ("good", "GOOD"), ("overstock", "OVER")])
    def test_filter_matches_derived_status(self, business_a, shelf, status, sku):
        listing = catalog_service.list_products(business_a.id, stock_status=status)
        assert [item["sku"] for item in listing["items"]] == [sku]

    def test_unknown_status_rejected(self, business_a, shelf):
        with pytest.raises(ValidationError):
            catalog_service.list_products(business_a.id, stock_status="plenty")


class TestListProducts:

    def test_scoped_to_business(self, db_session, business_a, product_a, product_b):
        listing = catalog_service.list_products(business_a.id)
        assert [item["id"] for item in listing["items"]] == [product_a.id]
        assert listing["total"] == 1

    def test_search_and_pagination(self, db_session, business_a):
        for i in range(5):
            make_product(business_a, sku=f"OIL-{i}", name=f"Argan Oil {i}")
        make_product(business_a, sku="WAX-1", name="Hair Wax")

        page = catalog_service.list_products(business_a.id, search="argan", limit=2, offset=2)
        assert page["total"] == 5
        assert page["count"] == 2
        assert [item["sku"] for item in page["items"]] == ["OIL-2", "OIL-3"]

    def test_sort_descending_by_stock(self, db_session, business_a):
        make_product(business_a, sku="A", name="A", initial_stock=1)
        make_product(business_a, sku="B", name="B", initial_stock=9)
        make_product(business_a, sku="C", name="C", initial_stock=4)

        listing = catalog_service.list_products(business_a.id, sort_by="current_stock", sort_order="desc")
        assert [item["sku"] for item in listing["items"]] == ["B", "C", "A"]

    def test_active_filter(self, db_session, business_a, product_a):
        make_product(business_a, sku="OLD", name="Old stock")
        catalog_service.deactivate_product(business_id=business_a.id, product_id=product_a.id)

        listing = catalog_service.list_products(business_a.id, is_active=True)
        assert [item["sku"] for item in listing["items"]] == ["OLD"]

    def test_bad_sort_rejected(self, business_a):
        with pytest.raises(ValidationError):
            catalog_service.list_products(business_a.id, sort_by="price")


class TestCategories:

    def test_list_counts_active_products(self, db_session, business_a, category_a):
        make_product(business_a, sku="H-1", category_id=category_a.id)
        make_product(business_a, sku="H-2", category_id=category_a.id, is_active=False)

        categories = catalog_service.list_categories(business_a.id)
        assert len(categories) == 1
        assert categories[0]["name"] == "Hair Care"
        assert categories[0]["product_count"] == 1

    def test_delete_in_use_rejected(self, db_session, business_a, category_a):
        make_product(business_a, sku="H-1", category_id=category_a.id)

        with pytest.raises(CategoryInUseError):
            catalog_service.delete_category(business_id=business_a.id, category_id=category_a.id)
        assert db_session.get(Category, category_a.id) is not None

    def test_delete_detaches_inactive_products_and_children(self, db_session, business_a, category_a):
        retired = make_product(business_a, sku="H-OLD", category_id=category_a.id, is_active=False)
        child = catalog_service.create_category(
            business_id=business_a.id,
            patch={"name": "Shampoos", "parent_category_id": category_a.id},
        )
        category_id = category_a.id

        catalog_service.delete_category(business_id=business_a.id, category_id=category_id)

        assert db_session.get(Category, category_id) is None
        assert db_session.get(Product, retired.id).category_id is None
        assert db_session.get(Category, child.id).parent_category_id is None

    def test_other_business_category_is_not_found(self, db_session, business_b, category_a):
        with pytest.raises(CategoryNotFoundError):
            catalog_service.delete_category(business_id=business_b.id, category_id=category_a.id)

    def test_parent_cycle_rejected(self, db_session, business_a, category_a):
        child = catalog_service.create_category(
            business_id=business_a.id,
            patch={"name": "Shampoos", "parent_category_id": category_a.id},
        )

        with pytest.raises(ValidationError):
            catalog_service.update_category(
                business_id=business_a.id,
                category_id=category_a.id,
                patch={"parent_category_id": child.id},
            )
        with pytest.raises(ValidationError):
            catalog_service.update_category(
                business_id=business_a.id,
                category_id=category_a.id,
                patch={"parent_category_id": category_a.id},
            )

    def test_blank_name_rejected(self, db_session, business_a):
        with pytest.raises(ValidationError):
            catalog_service.create_category(business_id=business_a.id, patch={"name": "   "})
