import pytest

from conftest import make_order, stock_up
from lpg_ledger.exceptions import InsufficientStockError, InvariantViolationError, NotFoundError, ValidationError
from lpg_ledger.models.adjustment import AdjustmentRecord
from lpg_ledger.models.order import OrderStatus
from lpg_ledger.services import adjustment_service, audit_service, reservation_service, stock_store


class TestAdjust:
    def test_receive_then_remove_stock(self, db, warehouse, product):
        added = adjustment_service.adjust(db, warehouse.id, product.id, "full", 40, "truck delivery", "alice")
        assert added.qty_full == 40
        assert added.version == 1

        removed = adjustment_service.adjust(db, warehouse.id, product.id, "full", -15, "damaged", "alice")
        assert removed.qty_full == 25
        assert removed.version == 2

        history = audit_service.history(db, warehouse.id, product.id)
        assert [r.delta for r in history] == [-15, 40]
        assert [r.resulting_quantity for r in history] == [25, 40]

    def test_add_and_subtract_restores_quantities(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=12, empty=3)
        before = stock_store.get(db, warehouse.id, product.id)
        adjustment_service.adjust(db, warehouse.id, product.id, "empty", 7, "returns", "bob")
        after = adjustment_service.adjust(db, warehouse.id, product.id, "empty", -7, "refill run", "bob")
        assert (after.qty_full, after.qty_empty, after.qty_reserved) == (
            before.qty_full, before.qty_empty, before.qty_reserved
        )
        assert after.version == before.version + 2

    def test_removing_more_than_on_hand_is_rejected_not_clamped(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=5)
        with pytest.raises(InsufficientStockError) as exc:
            adjustment_service.adjust(db, warehouse.id, product.id, "full", -10, "damaged", "alice")

        err = exc.value
        assert err.context == {
            "warehouse_id": warehouse.id,
            "product_id": product.id,
            "inventory_type": "full",
            "requested": -10,
            "current": 5,
        }
        snap = stock_store.get(db, warehouse.id, product.id)
        assert snap.qty_full == 5
        assert snap.version == 1
        assert db.query(AdjustmentRecord).count() == 1

    def test_lowering_full_below_reserved_is_invariant_violation(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=10)
        adjustment_service.adjust(db, warehouse.id, product.id, "reserved", 8, "manual hold", "alice")
        with pytest.raises(InvariantViolationError) as exc:
            adjustment_service.adjust(db, warehouse.id, product.id, "full", -5, "damaged", "alice")
        assert exc.value.context["qty_full"] == 5
        assert exc.value.context["qty_reserved"] == 8
        assert stock_store.get(db, warehouse.id, product.id).qty_full == 10

    def test_reserving_beyond_full_is_invariant_violation(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=3)
        with pytest.raises(InvariantViolationError):
            adjustment_service.adjust(db, warehouse.id, product.id, "reserved", 4, "manual hold", "alice")

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_is_required(self, db, warehouse, product, reason):
        with pytest.raises(ValidationError):
            adjustment_service.adjust(db, warehouse.id, product.id, "full", 1, reason, "alice")
        assert stock_store.get(db, warehouse.id, product.id).version == 0

    @pytest.mark.parametrize("delta", [0, 1.5, True])
    def test_delta_must_be_nonzero_whole_number(self, db, warehouse, product, delta):
        with pytest.raises(ValidationError):
            adjustment_service.adjust(db, warehouse.id, product.id, "full", delta, "count", "alice")

    def test_unknown_inventory_type(self, db, warehouse, product):
        with pytest.raises(ValidationError) as exc:
            adjustment_service.adjust(db, warehouse.id, product.id, "half_full", 1, "count", "alice")
        assert exc.value.context["inventory_type"] == "half_full"

    def test_unknown_product(self, db, warehouse):
        with pytest.raises(NotFoundError):
            adjustment_service.adjust(db, warehouse.id, "missing", "full", 1, "count", "alice")


class TestOrderHolds:
    def test_cannot_drain_reserved_held_by_order(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=10)
        order = make_order(db, warehouse, [(product, 4)])
        reservation_service.apply_transition(db, order, OrderStatus.CONFIRMED)

        with pytest.raises(InsufficientStockError) as exc:
            adjustment_service.adjust(db, warehouse.id, product.id, "reserved", -3, "clear holds", "alice")

        assert exc.value.context["inventory_type"] == "reserved"
        assert exc.value.context["requested"] == -3
        assert exc.value.context["current"] == 0
        assert stock_store.get(db, warehouse.id, product.id).qty_reserved == 4

        reservation_service.apply_transition(db, order, OrderStatus.CANCELLED)
        snap = stock_store.get(db, warehouse.id, product.id)
        assert (snap.qty_reserved, snap.available) == (0, 10)

    def test_manual_hold_above_orders_can_be_cleared(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=10)
        adjustment_service.adjust(db, warehouse.id, product.id, "reserved", 2, "manual hold", "alice")
        order = make_order(db, warehouse, [(product, 4)])
        reservation_service.apply_transition(db, order, OrderStatus.CONFIRMED)

        stored = adjustment_service.adjust(db, warehouse.id, product.id, "reserved", -2, "hold lifted", "alice")
        assert stored.qty_reserved == 4

        with pytest.raises(InsufficientStockError):
            adjustment_service.adjust(db, warehouse.id, product.id, "reserved", -1, "hold lifted", "alice")

        reservation_service.apply_transition(db, order, OrderStatus.DELIVERED)
        snap = stock_store.get(db, warehouse.id, product.id)
        assert (snap.qty_full, snap.qty_reserved) == (6, 0)

    def test_released_and_delivered_orders_hold_nothing(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=10)
        delivered = make_order(db, warehouse, [(product, 3)])
        cancelled = make_order(db, warehouse, [(product, 2)])
        for order, final in ((delivered, OrderStatus.DELIVERED), (cancelled, OrderStatus.CANCELLED)):
            reservation_service.apply_transition(db, order, OrderStatus.CONFIRMED)
            reservation_service.apply_transition(db, order, final)
        adjustment_service.adjust(db, warehouse.id, product.id, "reserved", 5, "manual hold", "alice")

        assert adjustment_service.held_by_orders(db, warehouse.id, product.id) == 0
        stored = adjustment_service.adjust(db, warehouse.id, product.id, "reserved", -5, "hold lifted", "alice")
        assert stored.qty_reserved == 0


class TestTransfer:
    def test_moves_full_cylinders(self, db, warehouse, other_warehouse, product):
        stock_up(db, warehouse, product, full=20)
        source, dest = adjustment_service.transfer(
            db, warehouse.id, other_warehouse.id, product.id, 8, "rebalance", "carol"
        )
        assert source.qty_full == 12
        assert dest.qty_full == 8

        out_record = audit_service.history(db, warehouse.id, product.id, limit=1)[0]
        in_record = audit_service.history(db, other_warehouse.id, product.id, limit=1)[0]
        assert out_record.movement_type == "transfer_out"
        assert in_record.movement_type == "transfer_in"
        assert out_record.reference_id == in_record.reference_id
        assert out_record.reference_id.startswith("TRF-")
        assert len(audit_service.by_reference(db, out_record.reference_id)) == 2

    def test_cannot_move_reserved_stock(self, db, warehouse, other_warehouse, product):
        stock_up(db, warehouse, product, full=10)
        adjustment_service.adjust(db, warehouse.id, product.id, "reserved", 6, "manual hold", "carol")
        with pytest.raises(InsufficientStockError) as exc:
            adjustment_service.transfer(db, warehouse.id, other_warehouse.id, product.id, 5, "rebalance", "carol")
        assert exc.value.current == 4
        assert stock_store.get(db, other_warehouse.id, product.id).is_zero

    def test_same_warehouse_rejected(self, db, warehouse, product):
        with pytest.raises(ValidationError):
            adjustment_service.transfer(db, warehouse.id, warehouse.id, product.id, 1, "rebalance", "carol")

    def test_quantity_must_be_positive(self, db, warehouse, other_warehouse, product):
        with pytest.raises(ValidationError):
            adjustment_service.transfer(db, warehouse.id, other_warehouse.id, product.id, 0, "rebalance", "carol")


class TestSeedBaseline:
    def test_seeds_empty_pair(self, db, warehouse, product):
        stored = adjustment_service.seed_baseline(db, warehouse.id, product.id, 100, 50, "initial", "seed")
        assert (stored.qty_full, stored.qty_empty, stored.qty_reserved) == (100, 50, 0)
        records = audit_service.history(db, warehouse.id, product.id)
        assert sorted(r.inventory_type for r in records) == ["empty", "full"]
        assert {r.movement_type for r in records} == {"seed"}

    def test_skips_pair_with_stock(self, db, warehouse, product):
        stock_up(db, warehouse, product, full=4)
        assert adjustment_service.seed_baseline(db, warehouse.id, product.id, 100, 50, "initial", "seed") is None
        snap = stock_store.get(db, warehouse.id, product.id)
        assert (snap.qty_full, snap.qty_empty) == (4, 0)

    def test_negative_quantities_rejected(self, db, warehouse, product):
        with pytest.raises(ValidationError):
            adjustment_service.seed_baseline(db, warehouse.id, product.id, -1, 0, "initial", "seed")
