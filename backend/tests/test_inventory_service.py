# Overview: Pytest coverage for the inventory ledger.

import pytest

from criollo.errors import InsufficientStockError, InvalidMovementError, NotFoundError, ValidationError
from criollo.models import InventoryMovement
from criollo.services import catalog_service, inventory_service


def _available(product_id):
    return inventory_service.query(product_id).available


class TestReserveRelease:

    def test_reserve_decrements_and_records(self, db_session, product_x):
        movement = inventory_service.reserve(product_x.id, 3, actor="mozo1", reference="ORD-1")
        assert movement.movement_type == "RESERVE"
        assert movement.quantity_delta == -3
        assert (movement.quantity_before, movement.quantity_after) == (10, 7)
        assert _available(product_x.id) == 7

    def test_reserve_more_than_available(self, db_session, product_x):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.reserve(product_x.id, 11, actor="mozo1")
        assert exc.value.details == {"product_id": product_x.id, "requested": 11, "available": 10}
        assert _available(product_x.id) == 10

    def test_reserve_requires_positive_quantity(self, db_session, product_x):
        with pytest.raises(ValidationError):
            inventory_service.reserve(product_x.id, 0)

    def test_release_restores(self, db_session, product_x):
        inventory_service.reserve(product_x.id, 4, reference="ORD-1")
        movement = inventory_service.release(product_x.id, 4, reference="ORD-1")
        assert movement.movement_type == "RELEASE"
        assert movement.quantity_delta == 4
        assert _available(product_x.id) == 10

    def test_over_release_rejected(self, db_session, product_x):
        inventory_service.reserve(product_x.id, 2, reference="ORD-1")
        with pytest.raises(InvalidMovementError):
            inventory_service.release(product_x.id, 3, reference="ORD-1")
        assert _available(product_x.id) == 8

    def test_release_counts_previous_releases(self, db_session, product_x):
        inventory_service.reserve(product_x.id, 2, reference="ORD-1")
        inventory_service.release(product_x.id, 1, reference="ORD-1")
        assert inventory_service.net_reserved(product_x.id, "ORD-1") == 1
        with pytest.raises(InvalidMovementError):
            inventory_service.release(product_x.id, 2, reference="ORD-1")

    def test_second_reservation_of_last_unit_rejected(self, db_session, product_z):
        inventory_service.reserve(product_z.id, 1, actor="mozo1", reference="ORD-A")
        with pytest.raises(InsufficientStockError):
            inventory_service.reserve(product_z.id, 1, actor="mozo2", reference="ORD-B")
        assert _available(product_z.id) == 0
        assert [m.movement_type for m in inventory_service.list_movements(product_z.id)] == ["OPENING", "RESERVE"]

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.reserve(4242, 1)


class TestAdjustReceive:

    def test_adjust_records_signed_delta(self, db_session, product_x):
        movement = inventory_service.adjust(product_x.id, 7, actor="jefe", motive="physical count")
        assert movement.movement_type == "ADJUST"
        assert movement.quantity_delta == -3
        assert movement.reason == "physical count"
        assert _available(product_x.id) == 7

    def test_adjust_to_same_quantity_still_recorded(self, db_session, product_x):
        movement = inventory_service.adjust(product_x.id, 10, motive="recount")
        assert movement.quantity_delta == 0
        assert len(inventory_service.list_movements(product_x.id)) == 2

    def test_adjust_negative_rejected(self, db_session, product_x):
        with pytest.raises(InvalidMovementError):
            inventory_service.adjust(product_x.id, -1, motive="typo")
        assert _available(product_x.id) == 10

    def test_receive_adds_stock(self, db_session, product_x):
        movement = inventory_service.receive(product_x.id, 5, actor="almacen", reference="GUIA-9")
        assert movement.movement_type == "RECEIVE"
        assert _available(product_x.id) == 15

    def test_create_record_twice_rejected(self, db_session, product_x):
        with pytest.raises(ValidationError):
            inventory_service.create_record(product_x.id, 3)

    def test_create_record_uses_default_threshold(self, db_session, app):
        product = catalog_service.create_product(sku="W", name="Product W", price_cents=100)
        record = inventory_service.create_record(product.id, 3)
        assert record.minimum_threshold == app.config["DEFAULT_LOW_STOCK_THRESHOLD"]


class TestAlertsAndLedger:

    def test_low_and_out_of_stock(self, db_session, product_x, product_y, product_z):
        inventory_service.adjust(product_x.id, 2, motive="count")
        inventory_service.reserve(product_z.id, 1)

        low = {r.product_id for r in inventory_service.low_stock()}
        out = {r.product_id for r in inventory_service.out_of_stock()}

        assert low == {product_x.id, product_z.id}
        assert out == {product_z.id}

    def test_threshold_change_moves_product_into_low_stock(self, db_session, product_y):
        assert inventory_service.low_stock() == []
        inventory_service.set_threshold(product_y.id, 10)
        assert [r.product_id for r in inventory_service.low_stock()] == [product_y.id]
        with pytest.raises(ValidationError):
            inventory_service.set_threshold(product_y.id, -1)

    def test_low_stock_does_not_block_reservation(self, db_session, product_x):
        inventory_service.adjust(product_x.id, 1, motive="count")
        inventory_service.reserve(product_x.id, 1)
        assert _available(product_x.id) == 0

    def test_ledger_chain_verifies(self, db_session, product_x):
        inventory_service.reserve(product_x.id, 3, reference="ORD-1")
        inventory_service.release(product_x.id, 1, reference="ORD-1")
        inventory_service.receive(product_x.id, 4)
        inventory_service.adjust(product_x.id, 9, motive="count")

        movements = inventory_service.list_movements(product_x.id)
        for prev, cur in zip(movements, movements[1:]):
            assert prev.quantity_after == cur.quantity_before
        assert sum(m.quantity_delta for m in movements) == _available(product_x.id)
        assert inventory_service.verify_ledger(product_x.id) is True

    def test_ledger_break_detected(self, db_session, product_x):
        inventory_service.reserve(product_x.id, 3)
        # corrupt the cached balance behind the ledger's back
        record = inventory_service.query(product_x.id)
        record.available = 9
        db_session.commit()

        with pytest.raises(InvalidMovementError):
            inventory_service.verify_ledger(product_x.id)

    def test_movements_are_per_reference(self, db_session, product_x):
        inventory_service.reserve(product_x.id, 1, reference="ORD-1")
        inventory_service.reserve(product_x.id, 2, reference="ORD-2")
        refs = inventory_service.list_movements(product_x.id, reference="ORD-2")
        assert [m.quantity_delta for m in refs] == [-2]
        assert db_session.query(InventoryMovement).filter_by(product_id=product_x.id).count() == 3
