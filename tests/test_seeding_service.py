import pytest

from lpg_ledger.exceptions import ValidationError
from lpg_ledger.models.adjustment import AdjustmentRecord
from lpg_ledger.models.product import Product
from lpg_ledger.models.warehouse import Warehouse
from lpg_ledger.services import adjustment_service, seeding_service, stock_store


class TestValidateInventoryQuantities:
    def test_valid(self):
        result = seeding_service.validate_inventory_quantities(100, 50)
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_negative_and_over_reserved(self):
        result = seeding_service.validate_inventory_quantities(-1, -2, qty_reserved=3)
        assert not result.is_valid
        assert "Full quantity cannot be negative" in result.errors
        assert "Empty quantity cannot be negative" in result.errors
        assert "Reserved quantity cannot exceed full quantity" in result.errors

    def test_low_and_out_warnings(self):
        low = seeding_service.validate_inventory_quantities(5, 0)
        assert low.is_valid
        assert low.warnings == ["Low stock warning: Only 5 units available"]
        out = seeding_service.validate_inventory_quantities(4, 0, qty_reserved=4)
        assert out.warnings == ["Product is out of stock"]


class TestRunCompleteSeeding:
    def test_seeds_default_depot(self, db):
        steps = []
        result = seeding_service.run_complete_seeding(db, on_progress=lambda p: steps.append(p))

        assert sorted(result.seeded) == ["CYL-100KG-IND", "CYL-20KG-STD", "CYL-50KG-STD"]
        assert result.skipped == []
        assert db.get(Warehouse, result.warehouse_id).name == "Main Depot"

        snap = stock_store.get(db, result.warehouse_id, result.product_ids["CYL-20KG-STD"])
        assert (snap.qty_full, snap.qty_empty, snap.qty_reserved) == (100, 50, 0)
        snap = stock_store.get(db, result.warehouse_id, result.product_ids["CYL-100KG-IND"])
        assert (snap.qty_full, snap.qty_empty) == (30, 10)

        assert steps[0].progress == 1
        assert steps[-1].progress == 4
        assert all(step.total == 4 for step in steps)

    def test_second_run_changes_nothing(self, db):
        first = seeding_service.run_complete_seeding(db)
        records_after_first = db.query(AdjustmentRecord).count()

        second = seeding_service.run_complete_seeding(db)

        assert second.warehouse_id == first.warehouse_id
        assert second.product_ids == first.product_ids
        assert second.seeded == []
        assert sorted(second.skipped) == sorted(first.seeded)
        assert db.query(Warehouse).count() == 1
        assert db.query(Product).count() == 3
        assert db.query(AdjustmentRecord).count() == records_after_first
        snap = stock_store.get(db, first.warehouse_id, first.product_ids["CYL-50KG-STD"])
        assert (snap.qty_full, snap.qty_empty) == (75, 25)

    def test_does_not_overwrite_existing_stock(self, db):
        warehouse_id = seeding_service.create_default_warehouse(db)
        product_ids = seeding_service.create_default_products(db)
        adjustment_service.adjust(db, warehouse_id, product_ids["CYL-20KG-STD"], "full", 7, "count", "ops")

        seeded, skipped = seeding_service.seed_inventory(db, warehouse_id, product_ids)

        assert skipped == ["CYL-20KG-STD"]
        assert seeded == ["CYL-50KG-STD", "CYL-100KG-IND"]
        assert stock_store.get(db, warehouse_id, product_ids["CYL-20KG-STD"]).qty_full == 7

    def test_missing_product_mapping(self, db):
        warehouse_id = seeding_service.create_default_warehouse(db)
        with pytest.raises(ValidationError):
            seeding_service.seed_inventory(db, warehouse_id, {})
