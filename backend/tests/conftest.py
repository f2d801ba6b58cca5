"""
Pytest fixtures for the criollo core tests.

Provides an in-memory database, a clean session per test, and a small floor
and menu: table T (4 seats), ProductX @ 100.00, ProductY @ 50.00, ProductZ
with a single unit left, and a combo of X + 2 Y.
"""

import pytest

from criollo import create_app
from criollo.config import TestConfig
from criollo.extensions import db
from criollo.services import catalog_service, inventory_service, table_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config["ALLOW_INVOICE_PENDING_ORDERS"] = False


@pytest.fixture(scope='function')
def table_t(db_session):
    """Table T: number 1, 4 seats, FREE."""
    return table_service.create_table(1, 4, "Salon")


@pytest.fixture(scope='function')
def table_2(db_session):
    return table_service.create_table(2, 2, "Terraza")


@pytest.fixture(scope='function')
def product_x(db_session):
    """ProductX @ 100.00 with 10 units."""
    product = catalog_service.create_product(sku="X", name="Product X", price_cents=10000, category="fondos")
    inventory_service.create_record(product.id, 10, 2, actor="setup")
    return product


@pytest.fixture(scope='function')
def product_y(db_session):
    """ProductY @ 50.00 with 10 units."""
    product = catalog_service.create_product(sku="Y", name="Product Y", price_cents=5000, category="bebidas")
    inventory_service.create_record(product.id, 10, 2, actor="setup")
    return product


@pytest.fixture(scope='function')
def product_z(db_session):
    """ProductZ @ 30.00 with the last unit in stock."""
    product = catalog_service.create_product(sku="Z", name="Product Z", price_cents=3000, category="postres")
    inventory_service.create_record(product.id, 1, 0, actor="setup")
    return product


@pytest.fixture(scope='function')
def combo_xy(db_session, product_x, product_y):
    """Combo @ 180.00 = 1 X + 2 Y."""
    return catalog_service.create_combo(
        name="Combo XY",
        price_cents=18000,
        components=[
            {"product_id": product_x.id, "quantity": 1},
            {"product_id": product_y.id, "quantity": 2},
        ],
    )
