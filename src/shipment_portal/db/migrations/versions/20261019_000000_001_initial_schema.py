"""Initial schema for users, shipments, documents, and audit logs.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Creates:
- users, refresh_tokens, password_reset_tokens (identity)
- shipments, documents (lifecycle)
- audit_logs (audit trail)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """Apply migration: initial schema."""
    user_role = postgresql.ENUM(
        "admin", "accounts", "clearance_manager", name="user_role", create_type=False
    )
    user_role.create(op.get_bind(), checkfirst=True)

    shipment_status = postgresql.ENUM(
        "new",
        "created",
        "approved",
        "rejected",
        "changes_requested",
        "in_transit",
        "delivered",
        "cancelled",
        name="shipment_status",
        create_type=False,
    )
    shipment_status.create(op.get_bind(), checkfirst=True)

    transport_mode = postgresql.ENUM("air", "sea", "road", name="transport_mode", create_type=False)
    transport_mode.create(op.get_bind(), checkfirst=True)

    document_type = postgresql.ENUM(
        "invoice",
        "packing_list",
        "bill_of_lading",
        "air_waybill",
        "other",
        name="document_type",
        create_type=False,
    )
    document_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        _uuid_pk("user_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("must_change_password", sa.Boolean(), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["created_by"],
            ["users.user_id"],
            name=op.f("fk_users_created_by_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_users")),
        sa.UniqueConstraint("username", name=op.f("uq_users_username")),
        sa.UniqueConstraint("email", name=op.f("uq_users_email")),
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "refresh_tokens",
        _uuid_pk("token_id"),
        _timestamp("created_at"),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_refresh_tokens_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("token_id", name=op.f("pk_refresh_tokens")),
        sa.UniqueConstraint("token_hash", name=op.f("uq_refresh_tokens_token_hash")),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"], unique=False)

    op.create_table(
        "password_reset_tokens",
        _uuid_pk("token_id"),
        _timestamp("created_at"),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_password_reset_tokens_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("token_id", name=op.f("pk_password_reset_tokens")),
        sa.UniqueConstraint("token", name=op.f("uq_password_reset_tokens_token")),
    )
    op.create_index(
        "ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"], unique=False
    )

    op.create_table(
        "shipments",
        _uuid_pk("shipment_id"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("shipment_code", sa.String(32), nullable=False),
        sa.Column("status", shipment_status, nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("last_updated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("exporter_name", sa.String(255), nullable=False),
        sa.Column("exporter_address", sa.Text(), nullable=False),
        sa.Column("exporter_contact", sa.String(100), nullable=True),
        sa.Column("exporter_email", sa.String(255), nullable=True),
        sa.Column("vendor_name", sa.String(255), nullable=False),
        sa.Column("vendor_address", sa.Text(), nullable=False),
        sa.Column("vendor_contact", sa.String(100), nullable=True),
        sa.Column("vendor_email", sa.String(255), nullable=True),
        sa.Column("receiver_name", sa.String(255), nullable=False),
        sa.Column("receiver_address", sa.Text(), nullable=False),
        sa.Column("receiver_contact", sa.String(100), nullable=True),
        sa.Column("receiver_email", sa.String(255), nullable=True),
        sa.Column("item_description", sa.Text(), nullable=False),
        sa.Column("weight", sa.Numeric(12, 3), nullable=False),
        sa.Column("weight_unit", sa.String(10), nullable=False),
        sa.Column("dimensions_length", sa.Numeric(10, 2), nullable=True),
        sa.Column("dimensions_width", sa.Numeric(10, 2), nullable=True),
        sa.Column("dimensions_height", sa.Numeric(10, 2), nullable=True),
        sa.Column("dimensions_unit", sa.String(10), nullable=False),
        sa.Column("value", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("pickup_date", sa.Date(), nullable=False),
        sa.Column("expected_delivery_date", sa.Date(), nullable=False),
        sa.Column("mode_of_transport", transport_mode, nullable=False),
        sa.Column("invoice_no", sa.String(100), nullable=True),
        sa.Column("invoice_item_count", sa.Integer(), nullable=True),
        sa.Column("customs_r_form", sa.String(100), nullable=True),
        sa.Column("bl_awb_no", sa.String(100), nullable=True),
        sa.Column("container_no", sa.String(100), nullable=True),
        sa.Column("container_type", sa.String(50), nullable=True),
        sa.Column("cbm", sa.Numeric(10, 3), nullable=True),
        sa.Column("gross_weight", sa.Numeric(12, 3), nullable=True),
        sa.Column("package_count", sa.String(50), nullable=True),
        sa.Column("cleared_date", sa.Date(), nullable=True),
        sa.Column("expense_macl", sa.Numeric(14, 2), nullable=True),
        sa.Column("expense_mpl", sa.Numeric(14, 2), nullable=True),
        sa.Column("expense_mcs", sa.Numeric(14, 2), nullable=True),
        sa.Column("expense_transportation", sa.Numeric(14, 2), nullable=True),
        sa.Column("expense_liner", sa.Numeric(14, 2), nullable=True),
        sa.ForeignKeyConstraint(
            ["created_by"],
            ["users.user_id"],
            name=op.f("fk_shipments_created_by_users"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["last_updated_by"],
            ["users.user_id"],
            name=op.f("fk_shipments_last_updated_by_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("shipment_id", name=op.f("pk_shipments")),
        sa.UniqueConstraint("shipment_code", name=op.f("uq_shipments_shipment_code")),
    )
    op.create_index("ix_shipments_status", "shipments", ["status"], unique=False)
    op.create_index("ix_shipments_created_by", "shipments", ["created_by"], unique=False)
    op.create_index("ix_shipments_created_at", "shipments", ["created_at"], unique=False)
    op.create_index(
        "ix_shipments_mode_of_transport", "shipments", ["mode_of_transport"], unique=False
    )

    op.create_table(
        "documents",
        _uuid_pk("document_id"),
        _timestamp("uploaded_at"),
        sa.Column("shipment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_type", document_type, nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["shipment_id"],
            ["shipments.shipment_id"],
            name=op.f("fk_documents_shipment_id_shipments"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["uploaded_by"],
            ["users.user_id"],
            name=op.f("fk_documents_uploaded_by_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("document_id", name=op.f("pk_documents")),
    )
    op.create_index("ix_documents_shipment_id", "documents", ["shipment_id"], unique=False)
    op.create_index("ix_documents_document_type", "documents", ["document_type"], unique=False)

    op.create_table(
        "audit_logs",
        _uuid_pk("audit_log_id"),
        _timestamp("created_at"),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=True),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_audit_logs_user_id_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("audit_log_id", name=op.f("pk_audit_logs")),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index(
        "ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"], unique=False)


def downgrade() -> None:
    """Revert migration: initial schema."""
    # Reverse order respects foreign key dependencies
    op.drop_table("audit_logs")
    op.drop_table("documents")
    op.drop_table("shipments")
    op.drop_table("password_reset_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS document_type")
    op.execute("DROP TYPE IF EXISTS transport_mode")
    op.execute("DROP TYPE IF EXISTS shipment_status")
    op.execute("DROP TYPE IF EXISTS user_role")
