# Overview: Date-scoped, collision-free numbering for orders and invoices.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from criollo.time_utils import business_date


DOCUMENT_PREFIXES = {
    "ORDER": "ORD",
    "INVOICE": "FACT",
}


def _increment_stmt(document_type: str, on_date: date):
    return (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.business_date == on_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )


def _current_counter(document_type: str, on_date: date) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, business_date=on_date)
        .scalar()
    )


def _allocate(document_type: str, on_date: date) -> int:
    """
    Atomically allocate the next counter value for (document_type, on_date).

    The UPDATE takes a row lock held until the caller's transaction ends, so
    concurrent callers for the same type and day are serialized. The first
    allocation of the day inserts the row inside a savepoint; losing that
    insert race to another transaction falls back to the UPDATE path.
    """
    stmt = _increment_stmt(document_type, on_date)

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current_counter(document_type, on_date) - 1

    try:
        with db.session.begin_nested():
            db.session.add(
                DocumentSequence(document_type=document_type, business_date=on_date, next_number=2)
            )
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current_counter(document_type, on_date) - 1


def format_number(document_type: str, on_date: date, counter: int) -> str:
    prefix = DOCUMENT_PREFIXES[document_type]
    return f"{prefix}-{on_date:%Y%m%d}-{counter:04d}"


def next_number(document_type: str, *, on_date: date | None = None) -> str:
    """
    Allocate the next human-readable number, e.g. ``ORD-20261016-0007``.

    Runs inside the caller's transaction and does not commit: if the caller
    rolls back, the counter increment rolls back with it.
    """
    if document_type not in DOCUMENT_PREFIXES:
        raise ValidationError(
            f"Unknown document type '{document_type}'",
            details={"document_type": document_type, "allowed": sorted(DOCUMENT_PREFIXES)},
        )
    on_date = on_date or business_date()
    counter = _allocate(document_type, on_date)
    return format_number(document_type, on_date, counter)
