"""fulfillment core: orders view, stock, tasks, pick bins, event log

Revision ID: 0001_fulfillment_core
Revises:
Create Date: 2026-10-19T09:00:00.000000Z
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_fulfillment_core"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_TASK = sa.text("status IN ('PENDING', 'IN_PROGRESS')")


def _id_cols():
    return [
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    op.create_table(
        "catalog_product_variant",
        *_id_cols(),
        sa.Column("sku", sa.String(length=64), nullable=False, unique=True),
        sa.Column("upc", sa.String(length=32), nullable=True),
        sa.Column("barcode", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("image_url", sa.String(length=512), nullable=True),
    )
    op.create_index("ix_catalog_product_variant_sku", "catalog_product_variant", ["sku"])
    op.create_index("ix_catalog_product_variant_upc", "catalog_product_variant", ["upc"])
    op.create_index("ix_catalog_product_variant_barcode", "catalog_product_variant", ["barcode"])

    op.create_table(
        "wms_location",
        *_id_cols(),
        sa.Column("name", sa.String(length=64), nullable=False, unique=True),
        sa.Column("barcode", sa.String(length=64), nullable=True),
        sa.Column("pick_sequence", sa.Integer(), nullable=True),
        sa.Column("zone", sa.String(length=16), nullable=True),
        sa.Column("aisle", sa.String(length=16), nullable=True),
        sa.Column("rack", sa.String(length=16), nullable=True),
        sa.Column("shelf", sa.String(length=16), nullable=True),
        sa.Column("bin", sa.String(length=16), nullable=True),
    )
    op.create_index("ix_wms_location_barcode", "wms_location", ["barcode"])
    op.create_index("ix_wms_location_pick_sequence", "wms_location", ["pick_sequence"])

    op.create_table(
        "sales_order",
        *_id_cols(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("order_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="PENDING"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="STANDARD"),
        sa.Column("customer_name", sa.String(length=256), nullable=True),
        sa.Column("tracking_number", sa.String(length=128), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sales_order_order_number", "sales_order", ["order_number"])
    op.create_index("ix_sales_order_status", "sales_order", ["status"])

    op.create_table(
        "sales_order_item",
        *_id_cols(),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("sales_order.id"), nullable=False),
        sa.Column("product_variant_id", sa.String(length=36), sa.ForeignKey("catalog_product_variant.id"), nullable=True),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_picked", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_sales_order_item_order_id", "sales_order_item", ["order_id"])
    op.create_index("ix_sales_order_item_product_variant_id", "sales_order_item", ["product_variant_id"])

    op.create_table(
        "wms_inventory_unit",
        *_id_cols(),
        sa.Column("product_variant_id", sa.String(length=36), sa.ForeignKey("catalog_product_variant.id"), nullable=False),
        sa.Column("location_id", sa.String(length=36), sa.ForeignKey("wms_location.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="AVAILABLE"),
    )
    op.create_index("ix_wms_inventory_unit_product_variant_id", "wms_inventory_unit", ["product_variant_id"])
    op.create_index("ix_wms_inventory_unit_location_id", "wms_inventory_unit", ["location_id"])

    op.create_table(
        "wms_allocation",
        *_id_cols(),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("sales_order.id"), nullable=False),
        sa.Column("order_item_id", sa.String(length=36), sa.ForeignKey("sales_order_item.id"), nullable=False),
        sa.Column("product_variant_id", sa.String(length=36), sa.ForeignKey("catalog_product_variant.id"), nullable=False),
        sa.Column("location_id", sa.String(length=36), sa.ForeignKey("wms_location.id"), nullable=False),
        sa.Column("inventory_unit_id", sa.String(length=36), sa.ForeignKey("wms_inventory_unit.id"), nullable=True),
        sa.Column("task_item_id", sa.String(length=36), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="ALLOCATED"),
        sa.Column("picked_at", sa.DateTime(timezone=True), nullable=True),
    )
    for col in ("order_id", "order_item_id", "product_variant_id", "location_id", "inventory_unit_id", "task_item_id"):
        op.create_index(f"ix_wms_allocation_{col}", "wms_allocation", [col])
    op.create_index("ix_wms_alloc_order_status", "wms_allocation", ["order_id", "status"])

    op.create_table(
        "wms_task",
        *_id_cols(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("task_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="PENDING"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("sales_order.id"), nullable=False),
        sa.Column("total_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("short_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("packed_weight", sa.Numeric(12, 3), nullable=True),
        sa.Column("packed_weight_unit", sa.String(length=16), nullable=True),
        sa.Column("packed_dimensions", sa.JSON(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(length=128), nullable=True),
        sa.Column("source_bin_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_wms_task_order_id", "wms_task", ["order_id"])
    # at most one open task per (order, kind)
    op.create_index(
        "uq_wms_task_active_order_kind",
        "wms_task",
        ["order_id", "kind"],
        unique=True,
        postgresql_where=ACTIVE_TASK,
        sqlite_where=ACTIVE_TASK,
    )

    op.create_table(
        "wms_task_item",
        *_id_cols(),
        sa.Column("task_id", sa.String(length=36), sa.ForeignKey("wms_task.id"), nullable=False),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column("order_item_id", sa.String(length=36), sa.ForeignKey("sales_order_item.id"), nullable=True),
        sa.Column("product_variant_id", sa.String(length=36), sa.ForeignKey("catalog_product_variant.id"), nullable=True),
        sa.Column("location_id", sa.String(length=36), sa.ForeignKey("wms_location.id"), nullable=True),
        sa.Column("allocation_id", sa.String(length=36), sa.ForeignKey("wms_allocation.id"), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="PENDING"),
        sa.Column("quantity_required", sa.Integer(), nullable=False),
        sa.Column("quantity_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location_scanned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("item_scanned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("short_reason", sa.String(length=256), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_wms_task_item_task_id", "wms_task_item", ["task_id"])
    op.create_index("ix_wms_task_item_order_id", "wms_task_item", ["order_id"])
    op.create_index("ix_wms_task_item_task_seq", "wms_task_item", ["task_id", "sequence"], unique=True)

    op.create_table(
        "wms_task_event",
        *_id_cols(),
        sa.Column("task_id", sa.String(length=36), sa.ForeignKey("wms_task.id"), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("task_item_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
    )
    op.create_index("ix_wms_task_event_task_id", "wms_task_event", ["task_id"])

    op.create_table(
        "wms_pick_bin",
        *_id_cols(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("bin_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("barcode", sa.String(length=32), nullable=False, unique=True),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("sales_order.id"), nullable=False),
        sa.Column("pick_task_id", sa.String(length=36), sa.ForeignKey("wms_task.id"), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="STAGED"),
        sa.Column("picked_by", sa.String(length=128), nullable=True),
        sa.Column("picked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("packed_by", sa.String(length=128), nullable=True),
        sa.Column("packed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("label_zpl", sa.Text(), nullable=True),
    )
    op.create_index("ix_wms_pick_bin_barcode", "wms_pick_bin", ["barcode"])
    op.create_index("ix_wms_pick_bin_order_id", "wms_pick_bin", ["order_id"])
    op.create_index("ix_wms_pick_bin_pick_task_id", "wms_pick_bin", ["pick_task_id"])

    op.create_table(
        "wms_pick_bin_item",
        *_id_cols(),
        sa.Column("bin_id", sa.String(length=36), sa.ForeignKey("wms_pick_bin.id"), nullable=False),
        sa.Column("product_variant_id", sa.String(length=36), sa.ForeignKey("catalog_product_variant.id"), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("verified_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_wms_pick_bin_item_bin_id", "wms_pick_bin_item", ["bin_id"])
    op.create_index("ix_wms_pick_bin_item_variant", "wms_pick_bin_item", ["bin_id", "product_variant_id"], unique=True)

    op.create_table(
        "fulfillment_event",
        *_id_cols(),
        sa.Column("order_id", sa.String(length=36), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("correlation_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_fulfillment_event_order_id", "fulfillment_event", ["order_id"])
    op.create_index("ix_fulfillment_event_type", "fulfillment_event", ["type"])
    op.create_index("ix_fulfillment_event_correlation_id", "fulfillment_event", ["correlation_id"])
    op.create_index("ix_fulfillment_event_order_created", "fulfillment_event", ["order_id", "created_at"])


def downgrade():
    for table in (
        "fulfillment_event",
        "wms_pick_bin_item",
        "wms_pick_bin",
        "wms_task_event",
        "wms_task_item",
        "wms_task",
        "wms_allocation",
        "wms_inventory_unit",
        "sales_order_item",
        "sales_order",
        "wms_location",
        "catalog_product_variant",
    ):
        op.drop_table(table)
