"""initial stock schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

location_kind = postgresql.ENUM("warehouse", "store", name="location_kind", create_type=False)
transfer_status = postgresql.ENUM(
    "pending", "in_transit", "received", "partially_received", "cancelled",
    name="transfer_status",
    create_type=False,
)
po_status = postgresql.ENUM(
    "pending", "in_transit", "received", "partial", "cancelled",
    name="po_status",
    create_type=False,
)
movement_type = postgresql.ENUM(
    "ADJUSTMENT", "TRANSFER_OUT", "TRANSFER_RETURN", "TRANSFER_IN", "PURCHASE_RECEIPT",
    name="movement_type",
    create_type=False,
)

ENUMS = (location_kind, transfer_status, po_status, movement_type)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    bind = op.get_bind()
    # one named type per enum, shared by every column using it
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "stores",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("is_main", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
    )
    # at most one main store
    op.create_index(
        "uq_stores_single_main",
        "stores",
        ["is_main"],
        unique=True,
        postgresql_where=sa.text("is_main"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("reference", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("stock_warehouse", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_store", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("stock_warehouse >= 0", name="ck_product_stock_warehouse_nonneg"),
        sa.CheckConstraint("stock_store >= 0", name="ck_product_stock_store_nonneg"),
    )

    op.create_table(
        "store_stock",
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _ts("updated_at"),
        sa.CheckConstraint("quantity >= 0", name="ck_store_stock_qty_nonneg"),
    )

    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("nit", sa.String(32)),
        sa.Column("phone", sa.String(32)),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "stock_transfers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("transfer_number", sa.String(32), nullable=False, unique=True),
        sa.Column("from_kind", location_kind, nullable=False),
        sa.Column("from_store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT")),
        sa.Column("to_kind", location_kind, nullable=False),
        sa.Column("to_store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT")),
        sa.Column("status", transfer_status, nullable=False),
        sa.Column("notes", sa.Text()),
        _ts("created_at"),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_by_name", sa.String(200)),
        _ts("received_at", nullable=True),
        sa.Column("received_by", sa.String(64)),
        sa.Column("received_by_name", sa.String(200)),
        _ts("cancelled_at", nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("receipt_idempotency_key", sa.String(64), unique=True),
    )
    op.create_index("ix_stock_transfers_status_created", "stock_transfers", ["status", "created_at"])

    op.create_table(
        "transfer_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "transfer_id",
            sa.BigInteger(),
            sa.ForeignKey("stock_transfers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_reference", sa.String(64)),
        sa.Column("source_stock_snapshot", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer()),
        sa.Column("note", sa.Text()),
        sa.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_item_product"),
        sa.CheckConstraint("quantity > 0", name="ck_transfer_item_qty_pos"),
        sa.CheckConstraint(
            "quantity_received IS NULL OR (quantity_received >= 0 AND quantity_received <= quantity)",
            name="ck_transfer_item_received_bounds",
        ),
    )
    op.create_index("ix_transfer_items_transfer_id", "transfer_items", ["transfer_id"])

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_number", sa.String(32), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", po_status, nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("estimated_delivery_date", sa.Date()),
        _ts("received_date", nullable=True),
        sa.Column("invoice_number", sa.String(64)),
        sa.Column("notes", sa.Text()),
        sa.Column("received_location_kind", location_kind),
        sa.Column("received_store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT")),
        sa.Column("receipt_idempotency_key", sa.String(64), unique=True),
        _ts("created_at"),
        sa.Column("created_by", sa.String(64)),
        _ts("updated_at"),
    )

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("received_quantity", sa.Integer()),
        sa.CheckConstraint("quantity > 0", name="ck_po_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_item_unit_price_nonneg"),
        sa.CheckConstraint("received_quantity IS NULL OR received_quantity >= 0", name="ck_po_item_received_nonneg"),
    )
    op.create_index("ix_purchase_order_items_order_id", "purchase_order_items", ["order_id"])

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("location_kind", location_kind, nullable=False),
        sa.Column("store_id", sa.BigInteger(), sa.ForeignKey("stores.id", ondelete="RESTRICT")),
        sa.Column("previous_quantity", sa.Integer(), nullable=False),
        sa.Column("new_quantity", sa.Integer(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("movement_type", movement_type, nullable=False),
        sa.Column("reason", sa.String(255)),
        sa.Column("reference", sa.String(64)),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_name", sa.String(200)),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        _ts("created_at"),
        sa.CheckConstraint("new_quantity >= 0", name="ck_stock_adjustment_new_nonneg"),
        sa.CheckConstraint("delta = new_quantity - previous_quantity", name="ck_stock_adjustment_delta"),
    )
    op.create_index("ix_stock_adjustments_product_id", "stock_adjustments", ["product_id"])
    op.create_index("ix_stock_adjustments_reference", "stock_adjustments", ["reference"])
    op.create_index("ix_stock_adjustments_product_time", "stock_adjustments", ["product_id", "created_at"])

    # the ledger is append-only at the database level too
    op.execute(
        """
        CREATE OR REPLACE FUNCTION stock_adjustments_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'stock_adjustments is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_stock_adjustments_append_only
        BEFORE UPDATE OR DELETE ON stock_adjustments
        FOR EACH ROW EXECUTE FUNCTION stock_adjustments_append_only();
        """
    )

    op.create_table(
        "number_series",
        sa.Column("code", sa.String(16), primary_key=True),
        sa.Column("year", sa.Integer(), primary_key=True),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
    )


def downgrade() -> None:
    op.drop_table("number_series")
    op.execute("DROP TRIGGER IF EXISTS trg_stock_adjustments_append_only ON stock_adjustments")
    op.execute("DROP FUNCTION IF EXISTS stock_adjustments_append_only()")
    op.drop_table("stock_adjustments")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("transfer_items")
    op.drop_table("stock_transfers")
    op.drop_table("suppliers")
    op.drop_table("store_stock")
    op.drop_table("products")
    op.drop_index("uq_stores_single_main", table_name="stores")
    op.drop_table("stores")

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
