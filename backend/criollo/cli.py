# Overview: Flask CLI command groups for bootstrap, stock corrections and inspection.

# backend/criollo/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Idempotent demo data: six tables, a small menu and opening stock.
#
# Floor:
# - python -m flask tables list [--state FREE] [--zone Terraza]
# - python -m flask tables create --number 7 --capacity 4 --zone Salon
# - python -m flask tables reserve 7 --motive "Perez 21:00"
# - python -m flask tables maintenance 7 --motive "broken chair"
# - python -m flask tables clean 7
#   Complete maintenance (MAINTENANCE -> FREE).
# - python -m flask tables free 7
# - python -m flask tables deactivate 7
#
# Catalog:
# - python -m flask catalog add-product --sku LOMO --name "Lomo saltado" --price-cents 10000 --category fondos
# - python -m flask catalog add-combo --name "Menu ejecutivo" --price-cents 15000 --component 1:1 --component 3:1
# - python -m flask catalog list
#
# Stock (manual corrections):
# - python -m flask stock init --product-id 1 --quantity 40 [--threshold 5]
# - python -m flask stock receive --product-id 1 --quantity 20 --reference "GUIA-001"
# - python -m flask stock adjust --product-id 1 --quantity 38 --motive "physical count"
# - python -m flask stock low
#   Low-stock and out-of-stock report.
# - python -m flask stock movements --product-id 1
# - python -m flask stock verify [--product-id 1]
#
# Orders / invoices (inspection and supervisor actions):
# - python -m flask orders list [--state PENDING]
# - python -m flask orders advance 12
# - python -m flask orders cancel 12 --reason "customer left"
# - python -m flask invoices list [--order-id 12]
# - python -m flask invoices void 4 --reason "wrong payer"

import click
from flask.cli import with_appcontext

from .errors import CoreError
from .extensions import db
from .models import DiningTable, InventoryRecord, Product
from .services import catalog_service, inventory_service, invoice_service, order_service, table_service

CLI_ACTOR = "cli"


def _fail(exc: CoreError):
    raise click.ClickException(f"{exc.code}: {exc.message}")


def _table_id_for_number(number: int) -> int:
    table = db.session.query(DiningTable).filter_by(number=number).first()
    if table is None:
        raise click.ClickException(f"Table {number} not found")
    return table.id


def _money(cents: int) -> str:
    return f"{cents // 100}.{cents % 100:02d}"


# =============================================================================
# system
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


DEMO_TABLES = [
    (1, 2, "Salon"), (2, 4, "Salon"), (3, 4, "Salon"),
    (4, 6, "Salon"), (5, 4, "Terraza"), (6, 8, "Terraza"),
]

DEMO_PRODUCTS = [
    # sku, name, category, price_cents, opening stock
    ("LOMO", "Lomo saltado", "fondos", 10000, 40),
    ("AJI", "Aji de gallina", "fondos", 8500, 30),
    ("CHICHA", "Chicha morada", "bebidas", 1500, 60),
    ("CEVICHE", "Ceviche clasico", "entradas", 9000, 25),
    ("SUSPIRO", "Suspiro limeno", "postres", 1800, 20),
]


@system_group.command('seed')
@with_appcontext
def seed():
    """Idempotent demo data: tables, products, opening stock and one combo."""
    click.echo("START Seeding demo data...")

    for number, capacity, zone in DEMO_TABLES:
        if db.session.query(DiningTable).filter_by(number=number).first() is None:
            table_service.create_table(number, capacity, zone)
            click.echo(f"PASS Created table {number} ({capacity} seats, {zone})")

    products = {}
    for sku, name, category, price_cents, opening in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(sku=sku).first()
        if product is None:
            product = catalog_service.create_product(sku=sku, name=name, category=category, price_cents=price_cents)
            click.echo(f"PASS Created product {sku}")
        products[sku] = product.id
        if db.session.query(InventoryRecord).filter_by(product_id=product.id).first() is None:
            inventory_service.create_record(product.id, opening, actor=CLI_ACTOR)
            click.echo(f"PASS Opening stock {sku}: {opening}")

    if not catalog_service.list_combos(active_only=False):
        catalog_service.create_combo(
            name="Menu ejecutivo",
            price_cents=11000,
            components=[
                {"product_id": products["AJI"], "quantity": 1},
                {"product_id": products["CHICHA"], "quantity": 1},
            ],
        )
        click.echo("PASS Created combo 'Menu ejecutivo'")

    click.echo("DONE Seed complete.")


# =============================================================================
# tables
# =============================================================================

@click.group('tables')
def tables_group():
    """Floor plan and table state."""


@tables_group.command('list')
@click.option('--state', default=None, help='Filter by state (FREE, OCCUPIED, RESERVED, MAINTENANCE)')
@click.option('--zone', default=None, help='Filter by zone')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated tables')
@with_appcontext
def list_tables_cli(state, zone, include_inactive):
    try:
        tables = table_service.list_tables(state=state, zone=zone, include_inactive=include_inactive)
    except CoreError as exc:
        _fail(exc)

    if not tables:
        click.echo("No tables found.")
        return

    click.echo(f"{'#':<5} {'Seats':<6} {'Zone':<12} {'State':<12} Motive")
    click.echo("-" * 60)
    for t in tables:
        flag = "" if t.is_active else " (inactive)"
        click.echo(f"{t.number:<5} {t.capacity:<6} {(t.zone or '-'):<12} {t.state:<12} {t.state_motive or ''}{flag}")


@tables_group.command('create')
@click.option('--number', type=int, required=True, help='Table number')
@click.option('--capacity', type=int, required=True, help='Seats')
@click.option('--zone', default=None, help='Zone (Salon, Terraza, ...)')
@with_appcontext
def create_table_cli(number, capacity, zone):
    try:
        table = table_service.create_table(number, capacity, zone)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Created table {table.number} (ID: {table.id})")


@tables_group.command('reserve')
@click.argument('number', type=int)
@click.option('--motive', required=True, help='Who/when the reservation is for')
@with_appcontext
def reserve_table_cli(number, motive):
    try:
        table = table_service.reserve(_table_id_for_number(number), motive, actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Table {table.number} is {table.state}")


@tables_group.command('maintenance')
@click.argument('number', type=int)
@click.option('--motive', required=True, help='Reason for maintenance')
@with_appcontext
def maintenance_table_cli(number, motive):
    try:
        table = table_service.mark_maintenance(_table_id_for_number(number), motive, actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Table {table.number} is {table.state}")


@tables_group.command('clean')
@click.argument('number', type=int)
@with_appcontext
def clean_table_cli(number):
    try:
        table = table_service.complete_maintenance(_table_id_for_number(number), actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Table {table.number} is {table.state}")


@tables_group.command('free')
@click.argument('number', type=int)
@with_appcontext
def free_table_cli(number):
    try:
        table = table_service.free(_table_id_for_number(number), actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Table {table.number} is {table.state}")


@tables_group.command('deactivate')
@click.argument('number', type=int)
@with_appcontext
def deactivate_table_cli(number):
    try:
        table = table_service.deactivate_table(_table_id_for_number(number), actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Table {table.number} deactivated")


# =============================================================================
# catalog
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Products and combos."""


@catalog_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--category', default=None)
@with_appcontext
def add_product_cli(sku, name, price_cents, category):
    try:
        product = catalog_service.create_product(sku=sku, name=name, price_cents=price_cents, category=category)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@catalog_group.command('add-combo')
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--component', 'components', multiple=True, required=True,
              help='PRODUCT_ID:QTY (repeatable)')
@with_appcontext
def add_combo_cli(name, price_cents, components):
    parsed = []
    for raw in components:
        try:
            product_id, _, qty = raw.partition(":")
            parsed.append({"product_id": int(product_id), "quantity": int(qty or 1)})
        except ValueError:
            raise click.BadParameter(f"'{raw}' is not PRODUCT_ID:QTY", param_hint="--component")
    try:
        combo = catalog_service.create_combo(name=name, price_cents=price_cents, components=parsed)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Created combo '{combo.name}' (ID: {combo.id}, {len(combo.components)} components)")


@catalog_group.command('list')
@with_appcontext
def list_catalog_cli():
    products = catalog_service.list_products(active_only=False)
    click.echo(f"{'ID':<5} {'SKU':<12} {'Name':<28} {'Price':>9} {'Stock':>6}")
    click.echo("-" * 64)
    for p in products:
        stock = p.inventory.available if p.inventory is not None else "-"
        click.echo(f"{p.id:<5} {p.sku:<12} {p.name[:28]:<28} {_money(p.price_cents):>9} {stock:>6}")

    combos = catalog_service.list_combos(active_only=False)
    if combos:
        click.echo("\nCombos:")
        for c in combos:
            parts = ", ".join(f"{comp.quantity}x{comp.product.sku}" for comp in c.components)
            click.echo(f"  {c.id:<4} {c.name:<28} {_money(c.price_cents):>9}  [{parts}]")


# =============================================================================
# stock
# =============================================================================

@click.group('stock')
def stock_group():
    """Inventory records and manual corrections."""


@stock_group.command('init')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, default=0, show_default=True)
@click.option('--threshold', type=int, default=None, help='Low-stock threshold (defaults to DEFAULT_LOW_STOCK_THRESHOLD)')
@with_appcontext
def init_stock_cli(product_id, quantity, threshold):
    try:
        record = inventory_service.create_record(product_id, quantity, threshold, actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Tracking product {product_id}: {record.available} available (threshold {record.minimum_threshold})")


@stock_group.command('receive')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--reference', default=None, help='Supplier document number')
@with_appcontext
def receive_stock_cli(product_id, quantity, reference):
    try:
        movement = inventory_service.receive(product_id, quantity, actor=CLI_ACTOR, reference=reference)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Product {product_id}: {movement.quantity_before} -> {movement.quantity_after}")


@stock_group.command('adjust')
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True, help='Counted quantity')
@click.option('--motive', required=True, help='Reason for the correction')
@with_appcontext
def adjust_stock_cli(product_id, quantity, motive):
    try:
        movement = inventory_service.adjust(product_id, quantity, actor=CLI_ACTOR, motive=motive)
    except CoreError as exc:
        _fail(exc)
    click.echo(
        f"PASS Product {product_id}: {movement.quantity_before} -> {movement.quantity_after} "
        f"(delta {movement.quantity_delta:+d})"
    )


@stock_group.command('low')
@with_appcontext
def low_stock_cli():
    """Low-stock report (available <= threshold)."""
    records = inventory_service.low_stock()
    if not records:
        click.echo("PASS No products at or below threshold.")
        return

    click.echo(f"{'ID':<5} {'SKU':<12} {'Available':>9} {'Threshold':>9}  Status")
    click.echo("-" * 50)
    for r in records:
        status = "OUT" if r.is_out else "LOW"
        click.echo(f"{r.product_id:<5} {r.product.sku:<12} {r.available:>9} {r.minimum_threshold:>9}  {status}")


@stock_group.command('movements')
@click.option('--product-id', type=int, required=True)
@click.option('--reference', default=None)
@with_appcontext
def movements_cli(product_id, reference):
    for m in inventory_service.list_movements(product_id, reference=reference):
        click.echo(
            f"{m.id:<6} {m.movement_type:<8} {m.quantity_delta:>+5d} "
            f"{m.quantity_before:>5} -> {m.quantity_after:<5} {m.actor:<10} {m.reference or ''} {m.reason or ''}"
        )


@stock_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Single product (default: all tracked)')
@with_appcontext
def verify_stock_cli(product_id):
    """Check that movement chains explain every balance."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [r.product_id for r in db.session.query(InventoryRecord).order_by(InventoryRecord.product_id)]

    failures = 0
    for pid in product_ids:
        try:
            inventory_service.verify_ledger(pid)
            click.echo(f"PASS product {pid}")
        except CoreError as exc:
            failures += 1
            click.echo(f"FAIL product {pid}: {exc.message}")
    if failures:
        raise click.ClickException(f"{failures} ledger(s) failed verification")


# =============================================================================
# orders
# =============================================================================

@click.group('orders')
def orders_group():
    """Order inspection and supervisor actions."""


@orders_group.command('list')
@click.option('--state', default=None)
@click.option('--table', 'table_number', type=int, default=None, help='Table number')
@with_appcontext
def list_orders_cli(state, table_number):
    table_id = _table_id_for_number(table_number) if table_number is not None else None
    try:
        orders = order_service.list_orders(state=state, table_id=table_id)
    except CoreError as exc:
        _fail(exc)

    if not orders:
        click.echo("No orders found.")
        return
    for o in orders:
        table = o.table.number if o.table is not None else "-"
        click.echo(f"{o.id:<5} {o.number:<20} {o.kind:<9} table {table!s:<4} {o.state:<19} {_money(o.total_cents):>10}")


@orders_group.command('advance')
@click.argument('order_id', type=int)
@with_appcontext
def advance_order_cli(order_id):
    try:
        order = order_service.advance_state(order_id, actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Order {order.number} is {order.state}")


@orders_group.command('cancel')
@click.argument('order_id', type=int)
@click.option('--reason', required=True)
@with_appcontext
def cancel_order_cli(order_id, reason):
    try:
        order = order_service.cancel(order_id, reason, actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Order {order.number} is {order.state}")


# =============================================================================
# invoices
# =============================================================================

@click.group('invoices')
def invoices_group():
    """Invoice inspection and voids."""


@invoices_group.command('list')
@click.option('--order-id', type=int, default=None)
@click.option('--state', default=None)
@with_appcontext
def list_invoices_cli(order_id, state):
    try:
        invoices = invoice_service.list_invoices(order_id=order_id, state=state)
    except CoreError as exc:
        _fail(exc)
    if not invoices:
        click.echo("No invoices found.")
        return
    for inv in invoices:
        payer = inv.payer_name or (f"customer {inv.payer_customer_id}" if inv.payer_customer_id else "-")
        click.echo(
            f"{inv.id:<5} {inv.number:<20} order {inv.order_id:<5} {inv.state:<8} "
            f"{inv.payment_method:<9} {_money(inv.total_cents):>10}  {payer}"
        )


@invoices_group.command('void')
@click.argument('invoice_id', type=int)
@click.option('--reason', required=True)
@with_appcontext
def void_invoice_cli(invoice_id, reason):
    try:
        invoice = invoice_service.void(invoice_id, reason, actor=CLI_ACTOR)
    except CoreError as exc:
        _fail(exc)
    click.echo(f"PASS Invoice {invoice.number} is {invoice.state}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tables_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(invoices_group)
