"""promotions_core

Revision ID: 5c1e8f2a9b30
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e8f2a9b30"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _upgrade_platform_tables() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column(
            "tags",
            postgresql.ARRAY(sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::text[]"),
        ),
        sa.Column("customer_type", sa.String(32), nullable=True),
        sa.Column("visit_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sms_consent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("email_consent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "loyalty_points_balance", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("last_visit_date", sa.Date(), nullable=True),
        sa.Column("lifetime_spend", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        _created_at(),
    )
    op.create_index("idx_customers_phone", "customers", ["phone"])
    op.create_index("idx_customers_email", "customers", ["email"])
    op.create_index("idx_customers_last_visit_date", "customers", ["last_visit_date"])
    op.create_index("idx_customers_tags", "customers", ["tags"], postgresql_using="gin")
    op.create_table(
        "vehicles",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("customer_id", sa.BigInteger(), nullable=False),
        sa.Column("vehicle_type", sa.String(32), nullable=True),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
    )
    op.create_index("idx_vehicles_type_customer", "vehicles", ["vehicle_type", "customer_id"])

    for table_name in ("service_categories", "product_categories"):
        op.create_table(
            table_name,
            sa.Column("id", sa.BigInteger(), primary_key=True),
            sa.Column("name", sa.Text(), nullable=False),
        )
    op.create_table(
        "services",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category_id", sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(["category_id"], ["service_categories.id"]),
    )
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category_id", sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(["category_id"], ["product_categories.id"]),
    )


def _upgrade_coupon_tables() -> None:
    op.create_table(
        "coupons",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("use_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_single_use", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("min_purchase", sa.Numeric(12, 2), nullable=True),
        sa.Column("max_customer_visits", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.BigInteger(), nullable=True),
        sa.Column("customer_tags", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("tag_match_mode", sa.String(8), nullable=False, server_default=sa.text("'any'")),
        sa.Column("target_customer_type", sa.String(32), nullable=True),
        sa.Column("requires_product_ids", postgresql.ARRAY(sa.BigInteger()), nullable=True),
        sa.Column("requires_service_ids", postgresql.ARRAY(sa.BigInteger()), nullable=True),
        sa.Column(
            "requires_product_category_ids", postgresql.ARRAY(sa.BigInteger()), nullable=True
        ),
        sa.Column(
            "requires_service_category_ids", postgresql.ARRAY(sa.BigInteger()), nullable=True
        ),
        sa.Column("condition_logic", sa.String(8), nullable=False, server_default=sa.text("'and'")),
        sa.Column("campaign_id", sa.BigInteger(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('active','paused','expired','disabled')",
            name="ck_coupons_status",
        ),
        sa.CheckConstraint("tag_match_mode IN ('any','all')", name="ck_coupons_tag_match_mode"),
        sa.CheckConstraint("condition_logic IN ('and','or')", name="ck_coupons_condition_logic"),
        sa.CheckConstraint("use_count >= 0", name="ck_coupons_use_count_non_negative"),
        sa.CheckConstraint("max_uses IS NULL OR max_uses > 0", name="ck_coupons_max_uses_positive"),
        sa.CheckConstraint(
            "max_uses IS NULL OR use_count <= max_uses",
            name="ck_coupons_use_count_le_max",
        ),
        sa.CheckConstraint(
            "max_customer_visits IS NULL OR max_customer_visits >= 0",
            name="ck_coupons_max_customer_visits_non_negative",
        ),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
    )
    op.create_index(
        "uq_coupons_code_upper",
        "coupons",
        [sa.text("upper(code)")],
        unique=True,
    )
    op.create_index("idx_coupons_campaign", "coupons", ["campaign_id"])
    op.create_index("idx_coupons_customer", "coupons", ["customer_id"])
    op.create_index("idx_coupons_status_expires_at", "coupons", ["status", "expires_at"])

    op.create_table(
        "coupon_rewards",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("coupon_id", sa.BigInteger(), nullable=False),
        sa.Column("applies_to", sa.String(16), nullable=False),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("max_discount", sa.Numeric(12, 2), nullable=True),
        sa.Column("target_product_id", sa.BigInteger(), nullable=True),
        sa.Column("target_service_id", sa.BigInteger(), nullable=True),
        sa.Column("target_product_category_id", sa.BigInteger(), nullable=True),
        sa.Column("target_service_category_id", sa.BigInteger(), nullable=True),
        sa.CheckConstraint(
            "applies_to IN ('order','product','service')",
            name="ck_coupon_rewards_applies_to",
        ),
        sa.CheckConstraint(
            "discount_type IN ('percentage','flat','free')",
            name="ck_coupon_rewards_discount_type",
        ),
        sa.CheckConstraint(
            "discount_type <> 'percentage' OR discount_value > 0",
            name="ck_coupon_rewards_percentage_positive",
        ),
        sa.CheckConstraint(
            "discount_value >= 0",
            name="ck_coupon_rewards_discount_value_non_negative",
        ),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["target_service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["target_product_category_id"], ["product_categories.id"]),
        sa.ForeignKeyConstraint(["target_service_category_id"], ["service_categories.id"]),
    )
    op.create_index("idx_coupon_rewards_coupon", "coupon_rewards", ["coupon_id"])


def _upgrade_campaign_tables() -> None:
    op.create_table(
        "campaigns",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("channel", sa.String(8), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'draft'")),
        sa.Column(
            "audience_filters",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("sms_template", sa.Text(), nullable=True),
        sa.Column("email_subject", sa.Text(), nullable=True),
        sa.Column("email_template", sa.Text(), nullable=True),
        sa.Column("coupon_id", sa.BigInteger(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sending_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivered_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("channel IN ('sms','email','both')", name="ck_campaigns_channel"),
        sa.CheckConstraint(
            "status IN ('draft','scheduled','sending','sent','cancelled')",
            name="ck_campaigns_status",
        ),
        sa.CheckConstraint(
            "recipient_count >= 0",
            name="ck_campaigns_recipient_count_non_negative",
        ),
        sa.CheckConstraint(
            "delivered_count >= 0 AND delivered_count <= recipient_count",
            name="ck_campaigns_delivered_le_recipients",
        ),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"]),
    )
    op.create_index(
        "idx_campaigns_status_scheduled_at",
        "campaigns",
        ["status", "scheduled_at"],
    )
    op.create_foreign_key(
        "fk_coupons_campaign_id",
        "coupons",
        "campaigns",
        ["campaign_id"],
        ["id"],
    )

    op.create_table(
        "campaign_variants",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("campaign_id", sa.BigInteger(), nullable=False),
        sa.Column("label", sa.String(32), nullable=False),
        sa.Column("split_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("message_body", sa.Text(), nullable=True),
        sa.Column("email_subject", sa.Text(), nullable=True),
        sa.Column("is_winner", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.CheckConstraint(
            "split_percentage >= 0 AND split_percentage <= 100",
            name="ck_campaign_variants_split_range",
        ),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("campaign_id", "label", name="uq_campaign_variants_campaign_label"),
    )

    op.create_table(
        "campaign_recipients",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("campaign_id", sa.BigInteger(), nullable=False),
        sa.Column("customer_id", sa.BigInteger(), nullable=False),
        sa.Column("channel", sa.String(8), nullable=False),
        sa.Column("variant_id", sa.BigInteger(), nullable=True),
        sa.Column("coupon_code", sa.String(32), nullable=True),
        sa.Column("delivered", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "channel IN ('sms','email','both')",
            name="ck_campaign_recipients_channel",
        ),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["variant_id"], ["campaign_variants.id"]),
        sa.UniqueConstraint(
            "campaign_id",
            "customer_id",
            name="uq_campaign_recipients_campaign_customer",
        ),
    )
    op.create_index("idx_campaign_recipients_variant", "campaign_recipients", ["variant_id"])
    op.create_index("idx_campaign_recipients_sent_at", "campaign_recipients", ["sent_at"])
    op.create_index("idx_campaign_recipients_customer", "campaign_recipients", ["customer_id"])


def _upgrade_transaction_tables() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("customer_id", sa.BigInteger(), nullable=True),
        sa.Column("coupon_id", sa.BigInteger(), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"]),
    )
    op.create_index(
        "idx_transactions_customer_date",
        "transactions",
        ["customer_id", "transaction_date"],
    )
    op.create_index(
        "idx_transactions_coupon_customer",
        "transactions",
        ["coupon_id", "customer_id"],
    )

    op.create_table(
        "transaction_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("transaction_id", sa.BigInteger(), nullable=False),
        sa.Column("item_type", sa.String(16), nullable=False),
        sa.Column("service_id", sa.BigInteger(), nullable=True),
        sa.Column("product_id", sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
    )
    op.create_index("idx_transaction_items_transaction", "transaction_items", ["transaction_id"])
    op.create_index("idx_transaction_items_service", "transaction_items", ["service_id"])


def upgrade() -> None:
    _upgrade_platform_tables()
    _upgrade_coupon_tables()
    _upgrade_campaign_tables()
    _upgrade_transaction_tables()


def downgrade() -> None:
    op.drop_table("transaction_items")
    op.drop_table("transactions")
    op.drop_table("campaign_recipients")
    op.drop_table("campaign_variants")
    op.drop_constraint("fk_coupons_campaign_id", "coupons", type_="foreignkey")
    op.drop_table("campaigns")
    op.drop_table("coupon_rewards")
    op.drop_table("coupons")
    op.drop_table("products")
    op.drop_table("services")
    op.drop_table("product_categories")
    op.drop_table("service_categories")
    op.drop_table("vehicles")
    op.drop_table("customers")
