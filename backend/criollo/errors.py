# Overview: Domain error taxonomy shared by the table, order, invoice and inventory services.

"""
Every error raised by the core derives from CoreError and carries a
``details`` dict (entity id, current state, attempted transition, ...) so the
calling layer can render a user-facing message without re-querying.
"""

from __future__ import annotations


class CoreError(Exception):
    """Base class for all domain errors."""

    code = "core_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        rv = {"error": self.code, "message": self.message}
        if self.details:
            rv["details"] = dict(self.details)
        return rv


class ValidationError(CoreError):
    """Malformed input (zero quantity, unknown enum value, ...)."""

    code = "validation_error"


class NotFoundError(CoreError):
    """Referenced entity is absent."""

    code = "not_found"

    def __init__(self, entity: str, entity_id, message: str | None = None):
        super().__init__(
            message or f"{entity} {entity_id} not found",
            details={"entity": entity, "entity_id": entity_id},
        )


class InvalidTransitionError(CoreError):
    """Illegal state change on a table, order or invoice."""

    code = "invalid_transition"

    def __init__(
        self,
        entity: str,
        entity_id,
        current_state: str,
        attempted: str,
        message: str | None = None,
    ):
        super().__init__(
            message or f"Cannot move {entity} {entity_id} from {current_state} to {attempted}",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_state": current_state,
                "attempted": attempted,
            },
        )


class InsufficientStockError(CoreError):
    """Reservation exceeds available quantity."""

    code = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            details={"product_id": product_id, "requested": requested, "available": available},
        )


class InvalidMovementError(CoreError):
    """Stock movement would break the ledger (negative stock, over-release)."""

    code = "invalid_movement"


class IncompleteSplitError(CoreError):
    """A split leaves one or more order lines unassigned."""

    code = "incomplete_split"

    def __init__(self, order_id: int, missing_line_ids: list[int]):
        super().__init__(
            f"Split of order {order_id} does not cover lines {missing_line_ids}",
            details={"order_id": order_id, "missing_line_ids": missing_line_ids},
        )


class DuplicateAssignmentError(CoreError):
    """A split assigns the same order line to more than one partition."""

    code = "duplicate_assignment"

    def __init__(self, order_id: int, duplicate_line_ids: list[int]):
        super().__init__(
            f"Split of order {order_id} assigns lines {duplicate_line_ids} more than once",
            details={"order_id": order_id, "duplicate_line_ids": duplicate_line_ids},
        )


class ConcurrentModificationError(CoreError):
    """Optimistic version check or row lock conflict; retry with fresh state."""

    code = "concurrent_modification"
