# Overview: Pytest coverage for table registry transitions.

"""
Table Registry Tests

Covers the table state machine, idempotent free, maintenance handling and
the rule that a table never goes FREE while an active order sits on it.
"""

import pytest

from criollo.errors import InvalidTransitionError, NotFoundError, ValidationError
from criollo.models import AuditEvent
from criollo.services import ledger_service, order_service, table_service


class TestTableTransitions:

    def test_new_table_is_free(self, db_session, table_t):
        state = table_service.query_state(table_t.id)
        assert state["state"] == "FREE"
        assert state["active_order_id"] is None

    def test_occupy_free_table(self, db_session, table_t):
        table = table_service.occupy(table_t.id)
        assert table.state == "OCCUPIED"
        assert table.state_changed_at is not None

    def test_occupy_reserved_table(self, db_session, table_t):
        table_service.reserve(table_t.id, "Perez 21:00")
        table = table_service.occupy(table_t.id)
        assert table.state == "OCCUPIED"
        assert table.state_motive is None

    def test_occupy_occupied_table_rejected(self, db_session, table_t):
        table_service.occupy(table_t.id)
        with pytest.raises(InvalidTransitionError) as exc:
            table_service.occupy(table_t.id)
        assert exc.value.details["current_state"] == "OCCUPIED"
        assert exc.value.details["attempted"] == "OCCUPIED"

    def test_occupy_maintenance_rejected(self, db_session, table_t):
        table_service.mark_maintenance(table_t.id, "broken chair")
        with pytest.raises(InvalidTransitionError):
            table_service.occupy(table_t.id)

    def test_reserve_keeps_motive(self, db_session, table_t):
        table = table_service.reserve(table_t.id, "Perez 21:00")
        assert table.state == "RESERVED"
        assert table.state_motive == "Perez 21:00"

    def test_reserve_occupied_rejected(self, db_session, table_t):
        table_service.occupy(table_t.id)
        with pytest.raises(InvalidTransitionError):
            table_service.reserve(table_t.id, "late booking")

    def test_free_is_idempotent(self, db_session, table_t):
        """Freeing a FREE table succeeds and records nothing."""
        before = db_session.query(AuditEvent).count()
        table = table_service.free(table_t.id)
        assert table.state == "FREE"
        assert db_session.query(AuditEvent).count() == before

    def test_free_maintenance_rejected(self, db_session, table_t):
        table_service.mark_maintenance(table_t.id, "deep clean")
        with pytest.raises(InvalidTransitionError):
            table_service.free(table_t.id)

    def test_complete_maintenance_stamps_cleaning(self, db_session, table_t):
        table_service.mark_maintenance(table_t.id, "deep clean")
        table = table_service.complete_maintenance(table_t.id)
        assert table.state == "FREE"
        assert table.last_cleaned_at is not None

    def test_complete_maintenance_requires_maintenance(self, db_session, table_t):
        with pytest.raises(InvalidTransitionError):
            table_service.complete_maintenance(table_t.id)

    def test_free_rejected_while_order_active(self, db_session, table_t, product_x):
        order = order_service.create_order(
            table_id=table_t.id,
            items=[{"product_id": product_x.id, "quantity": 1}],
            created_by="mozo1",
        )
        with pytest.raises(InvalidTransitionError):
            table_service.free(table_t.id)
        assert table_service.query_state(table_t.id)["active_order_id"] == order.id

    def test_transitions_are_audited(self, db_session, table_t):
        table_service.occupy(table_t.id, actor="mozo1")
        table_service.free(table_t.id, actor="mozo1")
        events = [e.event_type for e in ledger_service.list_events("table", table_t.id)]
        assert events == ["table.occupied", "table.free"]

    def test_unknown_table(self, db_session):
        with pytest.raises(NotFoundError):
            table_service.occupy(999)


class TestTableSetup:

    def test_duplicate_number_rejected(self, db_session, table_t):
        with pytest.raises(ValidationError):
            table_service.create_table(1, 2)

    def test_capacity_must_be_positive(self, db_session):
        with pytest.raises(ValidationError):
            table_service.create_table(9, 0)

    def test_deactivated_table_cannot_be_occupied(self, db_session, table_t):
        table_service.deactivate_table(table_t.id)
        with pytest.raises(InvalidTransitionError):
            table_service.occupy(table_t.id)
        assert table_service.list_tables() == []
        assert len(table_service.list_tables(include_inactive=True)) == 1

    def test_deactivate_requires_free(self, db_session, table_t):
        table_service.occupy(table_t.id)
        with pytest.raises(InvalidTransitionError):
            table_service.deactivate_table(table_t.id)

    def test_find_available_smallest_first(self, db_session, table_t, table_2):
        tables = table_service.find_available(2)
        assert [t.number for t in tables] == [2, 1]

        tables = table_service.find_available(3)
        assert [t.number for t in tables] == [1]

        table_service.occupy(table_t.id)
        assert table_service.find_available(3) == []

    def test_find_available_by_zone(self, db_session, table_t, table_2):
        assert [t.number for t in table_service.find_available(1, zone="Terraza")] == [2]

    def test_list_tables_filters_state(self, db_session, table_t, table_2):
        table_service.occupy(table_2.id)
        assert [t.number for t in table_service.list_tables(state="OCCUPIED")] == [2]
        with pytest.raises(ValidationError):
            table_service.list_tables(state="BROKEN")
