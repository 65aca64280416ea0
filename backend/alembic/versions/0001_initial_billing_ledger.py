"""Initial schema — customers, containers, shipments, invoices and ledger.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18

Run with:
    alembic upgrade head
    # or
    python -m app.cli migrate
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _money(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), **kw)


def upgrade() -> None:
    # ── Customers ────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # ── Containers ───────────────────────────────────────────

    op.create_table(
        "containers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_number", sa.String(11), nullable=False, unique=True),
        sa.Column("status", sa.String(30), server_default="CREATED"),
        sa.Column("progress", sa.Integer(), server_default="0"),
        sa.Column("max_capacity", sa.Integer(), server_default="4"),
        sa.Column("current_count", sa.Integer(), server_default="0"),
        sa.Column("tracking_number", sa.String(100)),
        sa.Column("vessel_name", sa.String(255)),
        sa.Column("voyage_number", sa.String(100)),
        sa.Column("shipping_line", sa.String(255)),
        sa.Column("booking_number", sa.String(100)),
        sa.Column("loading_port", sa.String(255)),
        sa.Column("destination_port", sa.String(255)),
        sa.Column("transshipment_ports", sa.JSON()),
        sa.Column("current_location", sa.String(255)),
        sa.Column("loading_date", sa.DateTime()),
        sa.Column("departure_date", sa.DateTime()),
        sa.Column("estimated_arrival", sa.DateTime()),
        sa.Column("actual_arrival", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("current_count <= max_capacity", name="ck_containers_capacity"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_containers_progress"),
    )
    op.create_index("ix_containers_container_number", "containers", ["container_number"])
    op.create_index("ix_containers_status", "containers", ["status"])

    op.create_table(
        "shipments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("vehicle_year", sa.Integer()),
        sa.Column("vehicle_make", sa.String(100)),
        sa.Column("vehicle_model", sa.String(100)),
        sa.Column("vehicle_vin", sa.String(17)),
        _money("price", server_default="0"),
        _money("insurance_value", server_default="0"),
        _money("amount_paid", server_default="0"),
        sa.Column("container_id", sa.String(36), sa.ForeignKey("containers.id")),
        sa.Column("status", sa.String(20), server_default="ON_HAND"),
        sa.Column("payment_status", sa.String(20), server_default="PENDING"),
        sa.Column("payment_mode", sa.String(10)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    for col in ("user_id", "vehicle_vin", "container_id", "status", "payment_status", "created_at"):
        op.create_index(f"ix_shipments_{col}", "shipments", [col])

    # ── Container children ───────────────────────────────────

    op.create_table(
        "container_expenses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("date", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("vendor", sa.String(255)),
        sa.Column("invoice_number", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_container_expenses_container_id", "container_expenses", ["container_id"])

    op.create_table(
        "container_invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("vendor", sa.String(255)),
        sa.Column("date", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("due_date", sa.DateTime()),
        sa.Column("status", sa.String(20), server_default="PENDING"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_container_invoices_container_id", "container_invoices", ["container_id"])
    op.create_index("ix_container_invoices_invoice_number", "container_invoices", ["invoice_number"])

    op.create_table(
        "container_documents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("file_url", sa.String(1000), nullable=False),
        sa.Column("file_type", sa.String(100)),
        sa.Column("file_size", sa.Integer()),
        sa.Column("notes", sa.Text()),
        sa.Column("uploaded_by", sa.String(36)),
        sa.Column("uploaded_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_container_documents_container_id", "container_documents", ["container_id"])

    op.create_table(
        "tracking_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(100), nullable=False),
        sa.Column("location", sa.String(255)),
        sa.Column("vessel_name", sa.String(255)),
        sa.Column("description", sa.Text()),
        sa.Column("event_date", sa.DateTime(), nullable=False),
        sa.Column("source", sa.String(20), server_default="MANUAL"),
        sa.Column("completed", sa.Boolean(), server_default="false"),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_tracking_events_container_id", "tracking_events", ["container_id"])

    op.create_table(
        "container_audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("old_value", sa.String(255)),
        sa.Column("new_value", sa.String(255)),
        sa.Column("details", sa.JSON()),
        sa.Column("performed_by", sa.String(36), nullable=False),
        sa.Column("timestamp", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_container_audit_logs_container_id", "container_audit_logs", ["container_id"])
    op.create_index("ix_container_audit_logs_action", "container_audit_logs", ["action"])
    op.create_index("ix_container_audit_logs_timestamp", "container_audit_logs", ["timestamp"])

    # ── Billing ──────────────────────────────────────────────

    op.create_table(
        "user_invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("invoice_number", sa.String(50), nullable=False, unique=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="SET NULL")),
        sa.Column("status", sa.String(20), server_default="DRAFT"),
        sa.Column("issue_date", sa.Date(), server_default=sa.func.current_date()),
        sa.Column("due_date", sa.Date()),
        sa.Column("paid_date", sa.Date()),
        sa.Column("currency", sa.String(3), server_default="USD"),
        _money("subtotal", nullable=False),
        _money("discount", server_default="0"),
        _money("tax", server_default="0"),
        _money("total", nullable=False),
        sa.Column("payment_method", sa.String(50)),
        sa.Column("payment_reference", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    for col in ("invoice_number", "user_id", "container_id", "status"):
        op.create_index(f"ix_user_invoices_{col}", "user_invoices", [col])
    # One live invoice per customer per container
    op.create_index(
        "uq_user_invoices_container_user_active",
        "user_invoices",
        ["container_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )

    op.create_table(
        "invoice_line_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("invoice_id", sa.String(36),
                  sa.ForeignKey("user_invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id")),
        sa.Column("position", sa.Integer(), server_default="0"),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="1"),
        _money("unit_price", nullable=False),
        _money("amount", nullable=False),
    )
    op.create_index("ix_invoice_line_items_invoice_id", "invoice_line_items", ["invoice_id"])
    op.create_index("ix_invoice_line_items_shipment_id", "invoice_line_items", ["shipment_id"])

    # ── Ledger ───────────────────────────────────────────────

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        _money("amount", nullable=False),
        _money("balance", nullable=False),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id")),
        sa.Column("invoice_id", sa.String(36), sa.ForeignKey("user_invoices.id")),
        sa.Column("reverses_entry_id", sa.String(36),
                  sa.ForeignKey("ledger_entries.id"), unique=True),
        sa.Column("created_by", sa.String(36)),
        sa.Column("notes", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.UniqueConstraint("user_id", "sequence", name="uq_ledger_entries_user_sequence"),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )
    for col in ("user_id", "transaction_date", "type", "shipment_id", "invoice_id"):
        op.create_index(f"ix_ledger_entries_{col}", "ledger_entries", [col])


def downgrade() -> None:
    op.drop_table("ledger_entries")
    op.drop_table("invoice_line_items")
    op.drop_index("uq_user_invoices_container_user_active", table_name="user_invoices")
    op.drop_table("user_invoices")
    op.drop_table("container_audit_logs")
    op.drop_table("tracking_events")
    op.drop_table("container_documents")
    op.drop_table("container_invoices")
    op.drop_table("container_expenses")
    op.drop_table("shipments")
    op.drop_table("containers")
    op.drop_table("users")
