# backend/criollo/services/catalog_service.py
"""
Catalog Service

Products and combos that order lines reference. Prices live here; order
lines snapshot the price when the line is written, so editing a price never
changes an existing order.
"""
from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Combo, ComboComponent, Product
from .concurrency import run_with_retry
from .ledger_service import append_event

PRODUCT_MUTABLE_FIELDS = {"name", "category", "price_cents", "is_active"}


def _validate_price(price_cents) -> None:
    if not isinstance(price_cents, int) or isinstance(price_cents, bool) or price_cents < 0:
        raise ValidationError("price_cents must be a non-negative integer", details={"price_cents": price_cents})


def create_product(*, sku: str, name: str, price_cents: int, category: str | None = None) -> Product:
    def _op():
        if not sku or not name:
            raise ValidationError("sku and name are required", details={"sku": sku, "name": name})
        _validate_price(price_cents)
        if db.session.query(Product).filter_by(sku=sku).first() is not None:
            raise ValidationError(f"SKU '{sku}' already exists", details={"sku": sku})

        product = Product(sku=sku, name=name, category=category, price_cents=price_cents, is_active=True)
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, patch: dict, *, actor: str | None = None) -> Product:
    """Patch mutable product fields; unknown keys are ignored."""
    def _op():
        product = get_product(product_id)
        if "price_cents" in patch:
            _validate_price(patch["price_cents"])
        for k, v in patch.items():
            if k in PRODUCT_MUTABLE_FIELDS:
                setattr(product, k, v)
        append_event(
            event_type="product.updated",
            entity_type="product",
            entity_id=product.id,
            actor=actor,
            payload=",".join(sorted(k for k in patch if k in PRODUCT_MUTABLE_FIELDS)),
        )
        db.session.commit()
        return product

    return run_with_retry(_op)


def create_combo(*, name: str, price_cents: int, components: list[dict]) -> Combo:
    """
    Create a combo from ``components`` = [{"product_id": int, "quantity": int}, ...].
    """
    def _op():
        if not name:
            raise ValidationError("name is required")
        _validate_price(price_cents)
        if not components:
            raise ValidationError("A combo needs at least one component")

        combo = Combo(name=name, price_cents=price_cents, is_active=True)
        seen = set()
        for comp in components:
            product_id = comp.get("product_id")
            quantity = comp.get("quantity", 1)
            if product_id in seen:
                raise ValidationError(
                    f"Product {product_id} listed twice in combo",
                    details={"product_id": product_id},
                )
            seen.add(product_id)
            if not isinstance(quantity, int) or quantity < 1:
                raise ValidationError("Component quantity must be at least 1", details={"quantity": quantity})
            get_product(product_id)
            combo.components.append(ComboComponent(product_id=product_id, quantity=quantity))

        db.session.add(combo)
        db.session.commit()
        return combo

    return run_with_retry(_op)


def set_combo_active(combo_id: int, is_active: bool) -> Combo:
    def _op():
        combo = get_combo(combo_id)
        combo.is_active = is_active
        db.session.commit()
        return combo

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def get_combo(combo_id: int) -> Combo:
    combo = db.session.get(Combo, combo_id)
    if combo is None:
        raise NotFoundError("combo", combo_id)
    return combo


def list_products(category: str | None = None, active_only: bool = True) -> list[Product]:
    q = db.session.query(Product)
    if category is not None:
        q = q.filter(Product.category == category)
    if active_only:
        q = q.filter(Product.is_active == True)  # noqa: E712
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def list_combos(active_only: bool = True) -> list[Combo]:
    q = db.session.query(Combo)
    if active_only:
        q = q.filter(Combo.is_active == True)  # noqa: E712
    return q.order_by(Combo.name.asc(), Combo.id.asc()).all()
