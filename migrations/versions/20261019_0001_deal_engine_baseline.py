"""baseline deal engine schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _tenant_column() -> sa.Column:
    return sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("vat_registered", sa.Boolean(), nullable=False),
        sa.Column("vat_number", sa.String(32), nullable=True),
        sa.Column("company_number", sa.String(32), nullable=True),
        sa.Column("logo_key", sa.String(512), nullable=True),
        sa.Column("logo_url", sa.String(1024), nullable=True),
        sa.Column("deal_number_prefix", sa.String(16), nullable=False),
        sa.Column("next_deal_number", sa.Integer(), nullable=False),
        sa.Column("deposit_receipt_prefix", sa.String(16), nullable=False),
        sa.Column("invoice_prefix", sa.String(16), nullable=False),
        sa.Column("payment_receipt_prefix", sa.String(16), nullable=False),
        sa.Column("terms_consumer_in_person", sa.Text(), nullable=True),
        sa.Column("terms_consumer_distance", sa.Text(), nullable=True),
        sa.Column("terms_business_in_person", sa.Text(), nullable=True),
        sa.Column("terms_business_distance", sa.Text(), nullable=True),
        sa.Column("no_warranty_message", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    op.create_table(
        "contacts",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address_line1", sa.String(255), nullable=True),
        sa.Column("address_line2", sa.String(255), nullable=True),
        sa.Column("town", sa.String(120), nullable=True),
        sa.Column("county", sa.String(120), nullable=True),
        sa.Column("postcode", sa.String(16), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contacts_tenant_id", "contacts", ["tenant_id"])
    op.create_index("idx_contacts_tenant_name", "contacts", ["tenant_id", "display_name"])

    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("vrm", sa.String(16), nullable=False),
        sa.Column("vin", sa.String(32), nullable=True),
        sa.Column("make", sa.String(120), nullable=False),
        sa.Column("model", sa.String(120), nullable=False),
        sa.Column("derivative", sa.String(255), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        sa.Column("colour", sa.String(64), nullable=True),
        sa.Column("fuel_type", sa.String(32), nullable=True),
        sa.Column("vat_scheme", sa.String(32), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sales_status", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("sold_deal_id", sa.Integer(), nullable=True),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source_deal_id", sa.Integer(), nullable=True),
        sa.Column("source_px_vrm", sa.String(16), nullable=True),
        sa.Column("purchase_price_net", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_vat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_price_gross", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "purchased_from_contact_id",
            sa.Integer(),
            sa.ForeignKey("contacts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchase_notes", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "vrm", name="uq_vehicles_tenant_vrm"),
    )
    op.create_index("ix_vehicles_tenant_id", "vehicles", ["tenant_id"])
    op.create_index("idx_vehicles_tenant_sales_status", "vehicles", ["tenant_id", "sales_status"])
    op.create_index("idx_vehicles_source_deal", "vehicles", ["source_deal_id"])

    op.create_table(
        "vehicle_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vehicle_tasks_vehicle_id", "vehicle_tasks", ["vehicle_id"])

    op.create_table(
        "vehicle_issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("subcategory", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("action_needed", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("resolution", sa.String(255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deal_id", sa.Integer(), nullable=True),
        sa.Column("is_transferred", sa.Boolean(), nullable=False),
        sa.Column("source_appraisal_issue_id", sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_vehicle_issues_vehicle_status", "vehicle_issues", ["vehicle_id", "status"])

    op.create_table(
        "prep_task_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_prep_task_templates_tenant_id", "prep_task_templates", ["tenant_id"])

    op.create_table(
        "appraisals",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("vrm", sa.String(16), nullable=False),
        sa.Column("make", sa.String(120), nullable=True),
        sa.Column("model", sa.String(120), nullable=True),
        sa.Column("condition_notes", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appraisals_tenant_id", "appraisals", ["tenant_id"])

    op.create_table(
        "appraisal_issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("appraisal_id", sa.Integer(), sa.ForeignKey("appraisals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("subcategory", sa.String(120), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("action_needed", sa.Text(), nullable=True),
        sa.Column("fault_codes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appraisal_issues_appraisal_id", "appraisal_issues", ["appraisal_id"])

    op.create_table(
        "deals",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("deal_number", sa.String(32), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), sa.ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("sold_to_contact_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "invoice_to_contact_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("vat_scheme", sa.String(32), nullable=False),
        sa.Column("vehicle_price_net", sa.Numeric(12, 2), nullable=True),
        sa.Column("vehicle_vat_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("vehicle_price_gross", sa.Numeric(12, 2), nullable=True),
        sa.Column("purchase_price_net", sa.Numeric(12, 2), nullable=True),
        sa.Column("siv_original_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("siv_amendment_reason", sa.Text(), nullable=True),
        sa.Column("siv_amended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("siv_amended_by_user_id", sa.Integer(), nullable=True),
        sa.Column("sale_type", sa.String(32), nullable=True),
        sa.Column("buyer_use", sa.String(32), nullable=True),
        sa.Column("sale_channel", sa.String(32), nullable=True),
        sa.Column("delivery_amount_gross", sa.Numeric(12, 2), nullable=True),
        sa.Column("delivery_is_free", sa.Boolean(), nullable=False),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column("delivery_original_amount_on_deposit", sa.Numeric(12, 2), nullable=True),
        sa.Column("warranty_included", sa.Boolean(), nullable=False),
        sa.Column("warranty_name", sa.String(255), nullable=True),
        sa.Column("warranty_duration_months", sa.Integer(), nullable=True),
        sa.Column("warranty_claim_limit", sa.Numeric(12, 2), nullable=True),
        sa.Column("warranty_price_gross", sa.Numeric(12, 2), nullable=True),
        sa.Column("warranty_vat_treatment", sa.String(32), nullable=False),
        sa.Column("is_financed", sa.Boolean(), nullable=False),
        sa.Column(
            "finance_company_contact_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("finance_to_be_confirmed", sa.Boolean(), nullable=False),
        sa.Column("customer_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_signed_name", sa.String(255), nullable=True),
        sa.Column("dealer_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dealer_signed_name", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("terms_snapshot_text", sa.Text(), nullable=True),
        sa.Column("deposit_taken_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoiced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_mileage", sa.Integer(), nullable=True),
        sa.Column("delivered_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "deal_number", name="uq_deals_tenant_number"),
    )
    op.create_index("ix_deals_tenant_id", "deals", ["tenant_id"])
    op.create_index("idx_deals_tenant_status", "deals", ["tenant_id", "status"])
    op.create_index("idx_deals_tenant_vehicle", "deals", ["tenant_id", "vehicle_id"])

    op.create_table(
        "deal_add_ons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("unit_price_net", sa.Numeric(12, 2), nullable=False),
        sa.Column("vat_treatment", sa.String(32), nullable=False),
        sa.Column("vat_rate", sa.Numeric(5, 4), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deal_add_ons_deal_id", "deal_add_ons", ["deal_id"])

    op.create_table(
        "deal_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reference", sa.String(120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_refunded", sa.Boolean(), nullable=False),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deal_payments_deal_id", "deal_payments", ["deal_id"])

    op.create_table(
        "deal_part_exchanges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("vrm", sa.String(16), nullable=False),
        sa.Column("vin", sa.String(32), nullable=True),
        sa.Column("make", sa.String(120), nullable=True),
        sa.Column("model", sa.String(120), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        sa.Column("colour", sa.String(64), nullable=True),
        sa.Column("fuel_type", sa.String(32), nullable=True),
        sa.Column("allowance", sa.Numeric(12, 2), nullable=False),
        sa.Column("settlement", sa.Numeric(12, 2), nullable=False),
        sa.Column("vat_qualifying", sa.Boolean(), nullable=False),
        sa.Column("has_finance", sa.Boolean(), nullable=False),
        sa.Column(
            "finance_company_contact_id", sa.Integer(), sa.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("has_settlement_in_writing", sa.Boolean(), nullable=False),
        sa.Column("disposition", sa.String(32), nullable=True),
        sa.Column("condition_notes", sa.Text(), nullable=True),
        sa.Column(
            "source_appraisal_id", sa.Integer(), sa.ForeignKey("appraisals.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("converted_to_vehicle_id", sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deal_part_exchanges_deal_id", "deal_part_exchanges", ["deal_id"])

    op.create_table(
        "deal_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column(
            "vehicle_issue_id", sa.Integer(), sa.ForeignKey("vehicle_issues.id", ondelete="SET NULL"), nullable=True
        ),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deal_requests_deal_id", "deal_requests", ["deal_id"])

    op.create_table(
        "sales_documents",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("deal_id", sa.Integer(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("document_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("snapshot_data", sa.JSON(), nullable=False),
        sa.Column("share_token_hash", sa.String(64), nullable=True),
        sa.Column("share_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("regenerated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "regenerated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "type", "document_number", name="uq_sales_documents_tenant_type_number"
        ),
    )
    op.create_index("ix_sales_documents_tenant_id", "sales_documents", ["tenant_id"])
    op.create_index("idx_sales_documents_deal_type", "sales_documents", ["deal_id", "type"])
    op.create_index("idx_sales_documents_share_token", "sales_documents", ["share_token_hash"])

    op.create_table(
        "document_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("prefix", sa.String(16), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "type", name="uq_document_counters_tenant_type"),
    )
    op.create_index("ix_document_counters_tenant_id", "document_counters", ["tenant_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        _tenant_column(),
        sa.Column("deal_id", sa.Integer(), nullable=True),
        sa.Column("vehicle_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("event", sa.String(120), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_tenant_id", "activity_logs", ["tenant_id"])
    op.create_index("idx_activity_logs_tenant_deal", "activity_logs", ["tenant_id", "deal_id"])


def downgrade() -> None:
    op.drop_index("idx_activity_logs_tenant_deal", table_name="activity_logs")
    op.drop_index("ix_activity_logs_tenant_id", table_name="activity_logs")
    op.drop_table("activity_logs")

    op.drop_index("ix_document_counters_tenant_id", table_name="document_counters")
    op.drop_table("document_counters")

    op.drop_index("idx_sales_documents_share_token", table_name="sales_documents")
    op.drop_index("idx_sales_documents_deal_type", table_name="sales_documents")
    op.drop_index("ix_sales_documents_tenant_id", table_name="sales_documents")
    op.drop_table("sales_documents")

    for table in ("deal_requests", "deal_part_exchanges", "deal_payments", "deal_add_ons"):
        op.drop_index(f"ix_{table}_deal_id", table_name=table)
        op.drop_table(table)

    op.drop_index("idx_deals_tenant_vehicle", table_name="deals")
    op.drop_index("idx_deals_tenant_status", table_name="deals")
    op.drop_index("ix_deals_tenant_id", table_name="deals")
    op.drop_table("deals")

    op.drop_index("ix_appraisal_issues_appraisal_id", table_name="appraisal_issues")
    op.drop_table("appraisal_issues")
    op.drop_index("ix_appraisals_tenant_id", table_name="appraisals")
    op.drop_table("appraisals")

    op.drop_index("ix_prep_task_templates_tenant_id", table_name="prep_task_templates")
    op.drop_table("prep_task_templates")
    op.drop_index("idx_vehicle_issues_vehicle_status", table_name="vehicle_issues")
    op.drop_table("vehicle_issues")
    op.drop_index("ix_vehicle_tasks_vehicle_id", table_name="vehicle_tasks")
    op.drop_table("vehicle_tasks")

    op.drop_index("idx_vehicles_source_deal", table_name="vehicles")
    op.drop_index("idx_vehicles_tenant_sales_status", table_name="vehicles")
    op.drop_index("ix_vehicles_tenant_id", table_name="vehicles")
    op.drop_table("vehicles")

    op.drop_index("idx_contacts_tenant_name", table_name="contacts")
    op.drop_index("ix_contacts_tenant_id", table_name="contacts")
    op.drop_table("contacts")

    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_table("users")

    op.drop_table("tenants")
