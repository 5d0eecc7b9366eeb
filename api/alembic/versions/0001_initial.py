"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")

    op.create_table(
        "capability_tokens",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("permissions", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "import_jobs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("source_platform", sa.String(length=32), nullable=False, server_default="shein"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("total_products", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_log", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("import_settings", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("images", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("tags", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("source_platform", sa.String(length=32), nullable=True),
        sa.Column("source_product_id", sa.String(length=128), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "imported_products",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("import_job_id", sa.String(length=36), sa.ForeignKey("import_jobs.id"), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("source_url", sa.String(length=2048), nullable=False),
        sa.Column("source_product_id", sa.String(length=128), nullable=True),
        sa.Column("raw_data", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("processed_data", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("approval_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=64), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "source_url", name="uq_imported_product_org_source_url"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="completed"),
        sa.Column("shipping_address", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("internal_note", sa.Text(), nullable=True),
        sa.Column("source_order_number", sa.String(length=128), nullable=True),
        sa.Column("tracking_number", sa.String(length=128), nullable=True),
        sa.Column("tracking_url", sa.Text(), nullable=True),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.String(length=64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
    )

    op.create_table(
        "fulfillment_queue",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column("payload", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("source_order_number", sa.String(length=128), nullable=True),
        sa.Column("tracking_number", sa.String(length=128), nullable=True),
        sa.Column("tracking_url", sa.Text(), nullable=True),
        sa.Column("saga_progress", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lease_owner", sa.String(length=200), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("organization_id", "order_id", name="uq_fulfillment_queue_org_order"),
    )

    op.create_index("ix_capability_tokens_organization_id", "capability_tokens", ["organization_id"])
    op.create_index("ix_capability_tokens_user_id", "capability_tokens", ["user_id"])
    op.create_index("ix_import_jobs_organization_id", "import_jobs", ["organization_id"])
    op.create_index("ix_import_jobs_status", "import_jobs", ["status"])
    op.create_index("ix_import_jobs_started_at", "import_jobs", ["started_at"])
    op.create_index("ix_products_organization_id", "products", ["organization_id"])
    op.create_index("ix_products_source_platform", "products", ["source_platform"])
    op.create_index("ix_imported_products_import_job_id", "imported_products", ["import_job_id"])
    op.create_index("ix_imported_products_organization_id", "imported_products", ["organization_id"])
    op.create_index("ix_imported_products_approval_status", "imported_products", ["approval_status"])
    op.create_index("ix_imported_products_created_at", "imported_products", ["created_at"])
    op.create_index("ix_orders_organization_id", "orders", ["organization_id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_product_id", "order_items", ["product_id"])
    op.create_index("ix_fulfillment_queue_organization_id", "fulfillment_queue", ["organization_id"])
    op.create_index("ix_fulfillment_queue_order_id", "fulfillment_queue", ["order_id"])
    op.create_index("ix_fulfillment_queue_status", "fulfillment_queue", ["status"])
    op.create_index("ix_fulfillment_queue_next_attempt_at", "fulfillment_queue", ["next_attempt_at"])
    op.create_index("ix_fulfillment_queue_created_at", "fulfillment_queue", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_fulfillment_queue_created_at", table_name="fulfillment_queue")
    op.drop_index("ix_fulfillment_queue_next_attempt_at", table_name="fulfillment_queue")
    op.drop_index("ix_fulfillment_queue_status", table_name="fulfillment_queue")
    op.drop_index("ix_fulfillment_queue_order_id", table_name="fulfillment_queue")
    op.drop_index("ix_fulfillment_queue_organization_id", table_name="fulfillment_queue")
    op.drop_index("ix_order_items_product_id", table_name="order_items")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_index("ix_orders_organization_id", table_name="orders")
    op.drop_index("ix_imported_products_created_at", table_name="imported_products")
    op.drop_index("ix_imported_products_approval_status", table_name="imported_products")
    op.drop_index("ix_imported_products_organization_id", table_name="imported_products")
    op.drop_index("ix_imported_products_import_job_id", table_name="imported_products")
    op.drop_index("ix_products_source_platform", table_name="products")
    op.drop_index("ix_products_organization_id", table_name="products")
    op.drop_index("ix_import_jobs_started_at", table_name="import_jobs")
    op.drop_index("ix_import_jobs_status", table_name="import_jobs")
    op.drop_index("ix_import_jobs_organization_id", table_name="import_jobs")
    op.drop_index("ix_capability_tokens_user_id", table_name="capability_tokens")
    op.drop_index("ix_capability_tokens_organization_id", table_name="capability_tokens")

    op.drop_table("fulfillment_queue")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("imported_products")
    op.drop_table("products")
    op.drop_table("import_jobs")
    op.drop_table("capability_tokens")
