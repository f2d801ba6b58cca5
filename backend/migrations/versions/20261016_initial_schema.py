"""Initial schema: tables, catalog, orders, invoices, inventory ledger

Revision ID: 20261016_initial
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_initial"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def _version():
    return sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1"))


def upgrade():
    op.create_table(
        "dining_tables",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("zone", sa.String(64), nullable=True),
        sa.Column("state", sa.String(16), nullable=False, server_default="FREE"),
        sa.Column("state_motive", sa.String(255), nullable=True),
        sa.Column("state_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_cleaned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        _version(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number", name="uq_dining_tables_number"),
        sa.CheckConstraint("state IN ('FREE', 'OCCUPIED', 'RESERVED', 'MAINTENANCE')", name="ck_dining_tables_state"),
        sa.CheckConstraint("capacity > 0", name="ck_dining_tables_capacity"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("dining_tables", schema=None) as batch_op:
        batch_op.create_index("ix_dining_tables_state", ["state"], unique=False)
        batch_op.create_index("ix_dining_tables_state_zone", ["state", "zone"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        _version(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sa.CheckConstraint("price_cents >= 0", name="ck_products_price"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_category_active", ["category", "is_active"], unique=False)

    op.create_table(
        "combos",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        _version(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("price_cents >= 0", name="ck_combos_price"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "combo_components",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("combo_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["combo_id"], ["combos.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("combo_id", "product_id", name="uq_combo_components_combo_product"),
        sa.CheckConstraint("quantity > 0", name="ck_combo_components_quantity"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("combo_components", schema=None) as batch_op:
        batch_op.create_index("ix_combo_components_combo_id", ["combo_id"], unique=False)
        batch_op.create_index("ix_combo_components_product_id", ["product_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(32), nullable=False),
        sa.Column("table_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("state", sa.String(24), nullable=False, server_default="PENDING"),
        sa.Column("kind", sa.String(16), nullable=False, server_default="DINE_IN"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        _version(),
        sa.ForeignKeyConstraint(["table_id"], ["dining_tables.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number", name="uq_orders_number"),
        sa.CheckConstraint(
            "state IN ('PENDING', 'IN_PREPARATION', 'READY', 'DELIVERED', "
            "'PARTIALLY_INVOICED', 'INVOICED', 'CANCELLED')",
            name="ck_orders_state",
        ),
        sa.CheckConstraint("kind IN ('DINE_IN', 'TAKEOUT', 'DELIVERY')", name="ck_orders_kind"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_table_id", ["table_id"], unique=False)
        batch_op.create_index("ix_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_orders_state", ["state"], unique=False)
        batch_op.create_index("ix_orders_table_state", ["table_id", "state"], unique=False)
        batch_op.create_index("ix_orders_state_created", ["state", "created_at"], unique=False)

    op.create_table(
        "order_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("combo_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(255), nullable=True),
        _created_at(),
        _version(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["combo_id"], ["combos.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("(product_id IS NULL) <> (combo_id IS NULL)", name="ck_order_lines_product_xor_combo"),
        sa.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity"),
        sa.CheckConstraint("discount_cents >= 0", name="ck_order_lines_discount"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("order_lines", schema=None) as batch_op:
        batch_op.create_index("ix_order_lines_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_lines_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_order_lines_combo_id", ["combo_id"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(32), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("payer_customer_id", sa.Integer(), nullable=True),
        sa.Column("payer_name", sa.String(128), nullable=True),
        sa.Column("payer_document", sa.String(32), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False),
        sa.Column("tip_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="CASH"),
        sa.Column("state", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("is_split", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(255), nullable=True),
        _created_at(),
        _version(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number", name="uq_invoices_number"),
        sa.CheckConstraint("state IN ('PENDING', 'PAID', 'VOIDED')", name="ck_invoices_state"),
        sa.CheckConstraint("payment_method IN ('CASH', 'CARD', 'TRANSFER')", name="ck_invoices_payment_method"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_invoices_state", ["state"], unique=False)
        batch_op.create_index("ix_invoices_order_state", ["order_id", "state"], unique=False)

    op.create_table(
        "invoice_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("order_line_id", sa.Integer(), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.ForeignKeyConstraint(["order_line_id"], ["order_lines.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_id", "order_line_id", name="uq_invoice_lines_invoice_line"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoice_lines", schema=None) as batch_op:
        batch_op.create_index("ix_invoice_lines_invoice_id", ["invoice_id"], unique=False)
        batch_op.create_index("ix_invoice_lines_order_line_id", ["order_line_id"], unique=False)

    op.create_table(
        "inventory_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("available", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("minimum_threshold", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        _version(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", name="uq_inventory_records_product"),
        sa.CheckConstraint("available >= 0", name="ck_inventory_records_available"),
        sa.CheckConstraint("minimum_threshold >= 0", name="ck_inventory_records_threshold"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(64), nullable=False),
        sa.Column("reference", sa.String(64), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "movement_type IN ('OPENING', 'RESERVE', 'RELEASE', 'ADJUST', 'RECEIVE')",
            name="ck_inventory_movements_type",
        ),
        sa.CheckConstraint("quantity_after >= 0", name="ck_inventory_movements_after"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("inventory_movements", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_movements_product_id", ["product_id", "id"], unique=False)
        batch_op.create_index("ix_inventory_movements_reference", ["product_id", "reference"], unique=False)
        batch_op.create_index("ix_inventory_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_inventory_movements_occurred_at", ["occurred_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(16), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "business_date", name="uq_doc_sequences_type_date"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(64), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("audit_events", schema=None) as batch_op:
        batch_op.create_index("ix_audit_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_audit_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_audit_events_entity", ["entity_type", "entity_id"], unique=False)


def downgrade():
    op.drop_table("audit_events")
    op.drop_table("document_sequences")
    op.drop_table("inventory_movements")
    op.drop_table("inventory_records")
    op.drop_table("invoice_lines")
    op.drop_table("invoices")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("combo_components")
    op.drop_table("combos")
    op.drop_table("products")
    op.drop_table("dining_tables")
