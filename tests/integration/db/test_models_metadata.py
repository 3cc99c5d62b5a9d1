from __future__ import annotations

from forecourt.models import Base
import forecourt.models  # noqa: F401


def test_model_metadata_contains_deal_engine_tables():
    expected = {
        "tenants",
        "users",
        "contacts",
        "vehicles",
        "vehicle_tasks",
        "vehicle_issues",
        "prep_task_templates",
        "appraisals",
        "appraisal_issues",
        "deals",
        "deal_add_ons",
        "deal_payments",
        "deal_part_exchanges",
        "deal_requests",
        "sales_documents",
        "document_counters",
        "activity_logs",
    }
    assert expected.issubset(set(Base.metadata.tables.keys()))


def test_deals_carry_optimistic_version_column():
    deals = Base.metadata.tables["deals"]

    assert "version_id" in deals.columns
    assert {"tenant_id", "deal_number"} <= {column.name for column in deals.columns}


def test_vehicle_registration_is_unique_per_tenant():
    constraints = {c.name for c in Base.metadata.tables["vehicles"].constraints}

    assert "uq_vehicles_tenant_vrm" in constraints
