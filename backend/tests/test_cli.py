# Overview: Pytest coverage for the flask CLI groups.

from criollo.models import DiningTable, InventoryRecord, Product
from criollo.services import inventory_service


def test_seed_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(args=["system", "seed"])
    assert result.exit_code == 0, result.output

    assert db_session.query(DiningTable).count() == 6
    assert db_session.query(Product).count() == 5
    assert db_session.query(InventoryRecord).count() == 5


def test_stock_adjust_and_low_report(app, db_session, product_x):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "stock", "adjust", "--product-id", str(product_x.id), "--quantity", "1", "--motive", "count",
    ])
    assert result.exit_code == 0, result.output
    assert "10 -> 1" in result.output
    assert inventory_service.query(product_x.id).available == 1

    result = runner.invoke(args=["stock", "low"])
    assert "X" in result.output
    assert "LOW" in result.output


def test_negative_adjust_reports_error(app, db_session, product_x):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "stock", "adjust", "--product-id", str(product_x.id), "--quantity", "-3", "--motive", "oops",
    ])
    assert result.exit_code != 0
    assert "invalid_movement" in result.output


def test_table_commands(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["tables", "create", "--number", "12", "--capacity", "4", "--zone", "Barra"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=["tables", "maintenance", "12", "--motive", "wobbly leg"])
    assert "MAINTENANCE" in result.output

    result = runner.invoke(args=["tables", "free", "12"])
    assert result.exit_code != 0

    result = runner.invoke(args=["tables", "clean", "12"])
    assert "FREE" in result.output

    result = runner.invoke(args=["stock", "verify"])
    assert result.exit_code == 0, result.output
