from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

from promo_engine.db.models import Base


def test_all_tables_registered() -> None:
    expected_tables = {
        "customers",
        "vehicles",
        "services",
        "service_categories",
        "products",
        "product_categories",
        "transactions",
        "transaction_items",
        "coupons",
        "coupon_rewards",
        "campaigns",
        "campaign_variants",
        "campaign_recipients",
    }
    assert expected_tables.issubset(set(Base.metadata.tables))


def _check_names(table_name: str) -> set[str | None]:
    table = Base.metadata.tables[table_name]
    return {
        constraint.name for constraint in table.constraints if isinstance(constraint, CheckConstraint)
    }


def _unique_names(table_name: str) -> set[str | None]:
    table = Base.metadata.tables[table_name]
    return {
        constraint.name for constraint in table.constraints if isinstance(constraint, UniqueConstraint)
    }


def test_critical_constraints_present() -> None:
    coupons = Base.metadata.tables["coupons"]
    coupon_indexes = {index.name: index for index in coupons.indexes}
    assert coupon_indexes["uq_coupons_code_upper"].unique
    assert "ck_coupons_use_count_le_max" in _check_names("coupons")
    assert "ck_coupons_status" in _check_names("coupons")

    assert "ck_coupon_rewards_percentage_positive" in _check_names("coupon_rewards")

    assert "ck_campaigns_status" in _check_names("campaigns")
    assert "ck_campaigns_delivered_le_recipients" in _check_names("campaigns")
    campaign_indexes = {index.name for index in Base.metadata.tables["campaigns"].indexes}
    assert "idx_campaigns_status_scheduled_at" in campaign_indexes

    assert "uq_campaign_variants_campaign_label" in _unique_names("campaign_variants")
    assert "ck_campaign_variants_split_range" in _check_names("campaign_variants")

    assert "uq_campaign_recipients_campaign_customer" in _unique_names("campaign_recipients")
    recipient_indexes = {index.name for index in Base.metadata.tables["campaign_recipients"].indexes}
    assert "idx_campaign_recipients_sent_at" in recipient_indexes


def test_customer_tags_use_gin_index() -> None:
    customers = Base.metadata.tables["customers"]
    tags_index = next(index for index in customers.indexes if index.name == "idx_customers_tags")
    assert tags_index.dialect_options["postgresql"]["using"] == "gin"
