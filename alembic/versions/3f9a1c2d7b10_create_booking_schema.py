"""Create booking schema

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2025-08-04 10:12:31.204117

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f9a1c2d7b10"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "resort"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")
    # gist index support for the integer equality part of the exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "collections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("base_nightly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("cleaning_fee", sa.Numeric(10, 2), nullable=False, server_default="50"),
        sa.Column("service_fee_percent", sa.Numeric(5, 2), nullable=False, server_default="10"),
        sa.Column("min_nights", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("max_guests_per_unit", sa.Integer(), nullable=False, server_default="6"),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema=SCHEMA,
    )

    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "collection_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.collections.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="AVAILABLE"),
        sa.Column("channel_property_id", sa.Integer(), nullable=True, unique=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("unit_collection_status_idx", "units", ["collection_id", "status"], schema=SCHEMA)

    op.create_table(
        "discounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "collection_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.collections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("condition_type", sa.String(50), nullable=False, server_default="ALWAYS"),
        sa.Column("condition_value", postgresql.JSONB(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index(
        "discount_collection_active_idx", "discounts", ["collection_id", "is_active"], schema=SCHEMA
    )

    op.create_table(
        "affiliate_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("total_earned", sa.Numeric(10, 2), nullable=False, server_default="0"),
        *_timestamps(),
        schema=SCHEMA,
    )

    op.create_table(
        "affiliate_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column(
            "affiliate_user_id",
            sa.String(255),
            sa.ForeignKey(f"{SCHEMA}.affiliate_profiles.user_id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("booking_commission_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="ACTIVE"),
        sa.Column("click_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conversion_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        schema=SCHEMA,
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference_code", sa.String(20), nullable=False, unique=True),
        sa.Column(
            "collection_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.collections.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("guest_kind", sa.String(20), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=True, index=True),
        sa.Column("guest_name", sa.String(255), nullable=False),
        sa.Column("guest_email", sa.String(255), nullable=False),
        sa.Column("guest_phone", sa.String(50), nullable=True),
        sa.Column("guest_country", sa.String(100), nullable=True),
        sa.Column("guest_notes", sa.Text(), nullable=True),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("number_of_guests", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("units_required", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("nightly_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_nights", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("cleaning_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("service_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("affiliate_discount", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="PENDING_PAYMENT"),
        sa.Column("source", sa.String(50), nullable=False, server_default="DIRECT"),
        sa.Column(
            "affiliate_link_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.affiliate_links.id"),
            nullable=True,
        ),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(255), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("check_out > check_in", name="booking_dates_ordered"),
        sa.CheckConstraint(
            "(guest_kind = 'IDENTIFIED' AND user_id IS NOT NULL)"
            " OR (guest_kind = 'PENDING' AND user_id IS NULL)",
            name="booking_guest_variant",
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "booking_collection_dates_idx",
        "bookings",
        ["collection_id", "check_in", "check_out"],
        schema=SCHEMA,
    )
    op.create_index("booking_status_idx", "bookings", ["status"], schema=SCHEMA)

    op.create_table(
        "booking_units",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.bookings.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "unit_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.units.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("channel_reservation_id", sa.Integer(), nullable=True),
        sa.Column("stay_start", sa.Date(), nullable=False),
        sa.Column("stay_end", sa.Date(), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", "unit_id", name="booking_unit_unique"),
        schema=SCHEMA,
    )
    # No two live allocations of the same unit may overlap
    op.execute(
        f"""
        ALTER TABLE {SCHEMA}.booking_units
        ADD CONSTRAINT booking_unit_no_overlap
        EXCLUDE USING gist (
            unit_id WITH =,
            daterange(stay_start, stay_end, '[)') WITH &&
        ) WHERE (released_at IS NULL)
        """
    )

    op.create_table(
        "affiliate_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "affiliate_link_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.affiliate_links.id"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.bookings.id"),
            nullable=True,
            unique=True,
        ),
        sa.Column("commission_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        schema=SCHEMA,
    )

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING", index=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "notification_outbox",
        "affiliate_transactions",
        "booking_units",
        "bookings",
        "affiliate_links",
        "affiliate_profiles",
        "discounts",
        "units",
        "collections",
    ):
        op.drop_table(table, schema=SCHEMA)
