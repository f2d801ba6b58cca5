# Overview: Pytest coverage for the order engine.

"""
Order Engine Tests

Covers order creation (table occupancy + stock reservation as one unit),
line mutations with matching reserve/release movements, the kitchen
progression, cancellation and optimistic version checks.
"""

import pytest

from criollo.errors import (
    ConcurrentModificationError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from criollo.models import DiningTable, InventoryMovement, Order
from criollo.services import catalog_service, inventory_service, order_service, table_service
from criollo.services.order_service import compute_tax


def _available(product_id):
    return inventory_service.query(product_id).available


def _table_state(table_id):
    return table_service.query_state(table_id)["state"]


def _open_order(table, product, qty=2):
    return order_service.create_order(
        table_id=table.id,
        items=[{"product_id": product.id, "quantity": qty}],
        created_by="mozo1",
    )


class TestTotals:

    def test_tax_is_18_percent_half_up(self):
        assert compute_tax(20000) == 3600
        assert compute_tax(25000) == 4500
        assert compute_tax(1) == 0
        assert compute_tax(3) == 1      # 0.54 -> 1
        assert compute_tax(25) == 5     # 4.5 -> 5

    def test_quote_items(self, db_session, product_x, product_y):
        quote = order_service.quote_items([
            {"product_id": product_x.id, "quantity": 2},
            {"product_id": product_y.id, "quantity": 1, "discount_cents": 1000},
        ])
        assert quote["subtotal_cents"] == 24000
        assert quote["tax_cents"] == 4320
        assert quote["total_cents"] == 28320
        assert _available(product_x.id) == 10


class TestCreateOrder:

    def test_scenario_a(self, db_session, table_t, product_x):
        """2 x ProductX @ 100.00 on a free table."""
        order = _open_order(table_t, product_x)

        assert order.state == "PENDING"
        assert order.number.startswith("ORD-")
        assert order.subtotal_cents == 20000
        assert order.tax_cents == 3600
        assert order.total_cents == 23600
        assert _available(product_x.id) == 8
        assert _table_state(table_t.id) == "OCCUPIED"

        movements = inventory_service.list_movements(product_x.id, reference=order.number)
        assert [(m.movement_type, m.quantity_delta) for m in movements] == [("RESERVE", -2)]

    def test_insufficient_stock_commits_nothing(self, db_session, table_t, product_x, product_z):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(
                table_id=table_t.id,
                items=[
                    {"product_id": product_x.id, "quantity": 2},
                    {"product_id": product_z.id, "quantity": 2},
                ],
                created_by="mozo1",
            )

        assert db_session.query(Order).count() == 0
        assert _available(product_x.id) == 10
        assert _available(product_z.id) == 1
        assert _table_state(table_t.id) == "FREE"
        assert db_session.query(InventoryMovement).filter_by(movement_type="RESERVE").count() == 0

    def test_failed_order_does_not_consume_number(self, db_session, table_t, product_x, product_z):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(
                table_id=table_t.id,
                items=[{"product_id": product_z.id, "quantity": 5}],
                created_by="mozo1",
            )
        order = _open_order(table_t, product_x)
        assert order.number.endswith("-0001")

    def test_occupied_table_rejected(self, db_session, table_t, product_x):
        _open_order(table_t, product_x)
        with pytest.raises(InvalidTransitionError):
            _open_order(table_t, product_x, qty=1)
        assert _available(product_x.id) == 8

    def test_combo_reserves_components(self, db_session, table_t, product_x, product_y, combo_xy):
        order = order_service.create_order(
            table_id=table_t.id,
            items=[{"combo_id": combo_xy.id, "quantity": 2}],
            created_by="mozo1",
        )
        assert order.total_cents == 36000 + compute_tax(36000)
        assert _available(product_x.id) == 8
        assert _available(product_y.id) == 6
        assert order.lines[0].item_type == "COMBO"

    def test_takeout_without_table(self, db_session, product_x):
        order = order_service.create_order(
            kind="TAKEOUT",
            items=[{"product_id": product_x.id, "quantity": 1}],
            created_by="caja",
        )
        assert order.table_id is None
        assert order.kind == "TAKEOUT"

    def test_dine_in_requires_table(self, db_session, product_x):
        with pytest.raises(ValidationError):
            order_service.create_order(items=[{"product_id": product_x.id, "quantity": 1}], created_by="mozo1")

    @pytest.mark.parametrize("item", [
        {"quantity": 1},
        {"product_id": 1, "combo_id": 1, "quantity": 1},
    ])
    def test_item_must_name_one_thing(self, db_session, table_t, item):
        with pytest.raises(ValidationError):
            order_service.create_order(table_id=table_t.id, items=[item], created_by="mozo1")

    @pytest.mark.parametrize("quantity", [0, -1, 100])
    def test_quantity_bounds(self, db_session, table_t, product_x, quantity):
        with pytest.raises(ValidationError):
            _open_order(table_t, product_x, qty=quantity)
        assert _table_state(table_t.id) == "FREE"

    def test_discount_cannot_exceed_line(self, db_session, table_t, product_x):
        with pytest.raises(ValidationError):
            order_service.create_order(
                table_id=table_t.id,
                items=[{"product_id": product_x.id, "quantity": 1, "discount_cents": 10001}],
                created_by="mozo1",
            )

    def test_inactive_product_rejected(self, db_session, table_t, product_x):
        catalog_service.update_product(product_x.id, {"is_active": False})
        with pytest.raises(ValidationError):
            _open_order(table_t, product_x)

    def test_inactive_combo_rejected(self, db_session, table_t, combo_xy):
        catalog_service.set_combo_active(combo_xy.id, False)
        with pytest.raises(ValidationError):
            order_service.create_order(
                table_id=table_t.id,
                items=[{"combo_id": combo_xy.id, "quantity": 1}],
                created_by="mozo1",
            )

    def test_empty_order_rejected(self, db_session, table_t):
        with pytest.raises(ValidationError):
            order_service.create_order(table_id=table_t.id, items=[], created_by="mozo1")

    def test_price_is_snapshotted(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        catalog_service.update_product(product_x.id, {"price_cents": 12000})
        order = order_service.get_order(order.id)
        assert order.lines[0].unit_price_cents == 10000
        assert order.total_cents == 23600


class TestLineMutations:

    def test_scenario_b(self, db_session, table_t, product_x, product_y):
        """Adding 1 x ProductY @ 50.00 to scenario A."""
        order = _open_order(table_t, product_x)
        order = order_service.add_item(order.id, {"product_id": product_y.id, "quantity": 1})

        assert order.subtotal_cents == 25000
        assert order.total_cents == 29500
        assert _available(product_y.id) == 9
        assert [line.position for line in order.lines] == [1, 2]

    def test_update_quantity_reserves_difference(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        line_id = order.lines[0].id

        order = order_service.update_quantity(order.id, line_id, 5)
        assert _available(product_x.id) == 5
        assert order.subtotal_cents == 50000

        order = order_service.update_quantity(order.id, line_id, 1)
        assert _available(product_x.id) == 9
        assert order.total_cents == 11800

    def test_update_quantity_short_stock(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        with pytest.raises(InsufficientStockError):
            order_service.update_quantity(order.id, order.lines[0].id, 11)
        assert _available(product_x.id) == 8
        assert order_service.get_order(order.id).lines[0].quantity == 2

    def test_remove_item_releases(self, db_session, table_t, product_x, product_y):
        order = _open_order(table_t, product_x)
        order = order_service.add_item(order.id, {"product_id": product_y.id, "quantity": 3})
        y_line = order.lines[1].id

        order = order_service.remove_item(order.id, y_line)
        assert _available(product_y.id) == 10
        assert len(order.lines) == 1
        assert order.total_cents == 23600

    def test_remove_last_line_rejected(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        with pytest.raises(ValidationError):
            order_service.remove_item(order.id, order.lines[0].id)

    def test_unknown_line(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        with pytest.raises(NotFoundError):
            order_service.update_quantity(order.id, 9999, 3)

    def test_no_edits_once_ready(self, db_session, table_t, product_x, product_y):
        order = _open_order(table_t, product_x)
        order_service.advance_state(order.id)
        order_service.advance_state(order.id)
        with pytest.raises(InvalidTransitionError):
            order_service.add_item(order.id, {"product_id": product_y.id, "quantity": 1})
        assert _available(product_y.id) == 10

    def test_stale_expected_version(self, db_session, table_t, product_x, product_y):
        order = _open_order(table_t, product_x)
        stale = order.version_id
        order_service.add_item(order.id, {"product_id": product_y.id, "quantity": 1}, expected_version=stale)

        with pytest.raises(ConcurrentModificationError) as exc:
            order_service.add_item(order.id, {"product_id": product_y.id, "quantity": 1}, expected_version=stale)
        assert exc.value.details["expected_version"] == stale
        assert _available(product_y.id) == 9


class TestProgressionAndCancel:

    def test_linear_progression(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        states = [order_service.advance_state(order.id).state for _ in range(3)]
        assert states == ["IN_PREPARATION", "READY", "DELIVERED"]

        with pytest.raises(InvalidTransitionError):
            order_service.advance_state(order.id)

    def test_skipping_rejected(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        with pytest.raises(InvalidTransitionError):
            order_service.advance_state(order.id, "READY")
        assert order_service.get_order(order.id).state == "PENDING"

    def test_create_then_cancel_round_trip(self, db_session, table_t, product_x, combo_xy, product_y):
        order = order_service.create_order(
            table_id=table_t.id,
            items=[
                {"product_id": product_x.id, "quantity": 2},
                {"combo_id": combo_xy.id, "quantity": 1},
            ],
            created_by="mozo1",
        )
        order_service.advance_state(order.id)

        order = order_service.cancel(order.id, "customer left", actor="jefe")

        assert order.state == "CANCELLED"
        assert order.cancel_reason == "customer left"
        assert _available(product_x.id) == 10
        assert _available(product_y.id) == 10
        assert _table_state(table_t.id) == "FREE"
        assert inventory_service.net_reserved(product_x.id, order.number) == 0
        assert inventory_service.verify_ledger(product_x.id)

    def test_cancel_is_idempotent(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        order_service.cancel(order.id, "mistake")
        movements = db_session.query(InventoryMovement).count()

        order = order_service.cancel(order.id, "mistake again")
        assert order.state == "CANCELLED"
        assert order.cancel_reason == "mistake"
        assert db_session.query(InventoryMovement).count() == movements
        assert _available(product_x.id) == 10

    def test_cancel_after_delivery_rejected(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        for _ in range(3):
            order_service.advance_state(order.id)
        with pytest.raises(InvalidTransitionError):
            order_service.cancel(order.id, "too late")
        assert _available(product_x.id) == 8

    def test_cancel_requires_reason(self, db_session, table_t, product_x):
        order = _open_order(table_t, product_x)
        with pytest.raises(ValidationError):
            order_service.cancel(order.id, "  ")

    def test_table_can_take_next_order_after_cancel(self, db_session, table_t, product_x):
        first = _open_order(table_t, product_x)
        order_service.cancel(first.id, "wrong table")
        second = _open_order(table_t, product_x, qty=1)
        assert order_service.active_order_for_table(table_t.id).id == second.id


class TestQueries:

    def test_list_orders_by_state(self, db_session, table_t, table_2, product_x):
        a = _open_order(table_t, product_x, qty=1)
        b = _open_order(table_2, product_x, qty=1)
        order_service.advance_state(b.id)

        assert [o.id for o in order_service.list_orders(state="PENDING")] == [a.id]
        assert [o.id for o in order_service.list_orders(table_id=table_2.id)] == [b.id]

    def test_check_availability_is_read_only(self, db_session, product_x, product_z):
        result = order_service.check_availability([
            {"product_id": product_x.id, "quantity": 2},
            {"product_id": product_z.id, "quantity": 3},
        ])
        assert result["available"] is False
        assert result["shortages"] == [{"product_id": product_z.id, "requested": 3, "available": 1}]
        assert _available(product_z.id) == 1

    def test_no_active_order(self, db_session, table_t):
        assert order_service.active_order_for_table(table_t.id) is None

    def test_table_never_free_with_active_order(self, db_session, table_t, table_2, product_x):
        _open_order(table_t, product_x, qty=1)
        b = _open_order(table_2, product_x, qty=1)
        order_service.cancel(b.id, "left")

        for table in db_session.query(DiningTable):
            if order_service.active_order_for_table(table.id) is not None:
                assert table.state == "OCCUPIED"
