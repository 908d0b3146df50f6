"""create rental pipeline tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _index_stat_columns() -> list[sa.Column]:
    return [
        sa.Column("city", sa.String(length=128), nullable=False),
        sa.Column("district", sa.String(length=128), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=False),
        sa.Column("property_type", sa.String(length=32), nullable=False),
        sa.Column("listing_count", sa.Integer(), nullable=False),
        sa.Column("median_price", sa.Float(), nullable=False),
        sa.Column("mean_price", sa.Float(), nullable=False),
        sa.Column("p25_price", sa.Float(), nullable=False),
        sa.Column("p75_price", sa.Float(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "scrape_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("canonical_url", sa.String(length=2048), nullable=False),
        sa.Column("source_listing_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, comment="PENDING, PROCESSING, RETRY, DONE"),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("claim_token", sa.String(length=64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "canonical_url", name="uq_scrape_queue_source_canonical_url"),
    )
    op.create_index(
        "ix_scrape_queue_source_status_priority",
        "scrape_queue",
        ["source", "status", "priority", "created_at"],
        unique=False,
    )
    op.create_index("ix_scrape_queue_claim_token", "scrape_queue", ["claim_token"], unique=False)

    op.create_table(
        "rental_listings",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("source_listing_id", sa.String(length=255), nullable=True),
        sa.Column("canonical_url", sa.String(length=2048), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=128), nullable=False),
        sa.Column("district", sa.String(length=128), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("property_type", sa.String(length=32), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("size_sqm", sa.Float(), nullable=True),
        sa.Column("price_original", sa.String(length=128), nullable=True),
        sa.Column("price_monthly_usd", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("image_urls", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("amenities", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "manual_override",
            sa.Boolean(),
            nullable=False,
            comment="Human correction; scraping must not change property_type or reactivate",
        ),
        sa.Column("content_fingerprint", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("canonical_url"),
    )
    op.create_index(
        "ix_rental_listings_source_listing_id",
        "rental_listings",
        ["source", "source_listing_id"],
        unique=False,
    )
    op.create_index(
        "ix_rental_listings_source_fingerprint",
        "rental_listings",
        ["source", "content_fingerprint"],
        unique=False,
    )
    op.create_index(
        "ix_rental_listings_active_last_seen",
        "rental_listings",
        ["is_active", "last_seen_at"],
        unique=False,
    )
    op.create_index("ix_rental_listings_city_district", "rental_listings", ["city", "district"], unique=False)

    op.create_table(
        "rental_snapshots",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("listing_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=False),
        sa.Column("district", sa.String(length=128), nullable=True),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("property_type", sa.String(length=32), nullable=False),
        sa.Column("price_monthly_usd", sa.Float(), nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scraped_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["listing_id"], ["rental_listings.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rental_snapshots_scraped_at", "rental_snapshots", ["scraped_at"], unique=False)
    op.create_index("ix_rental_snapshots_listing_id", "rental_snapshots", ["listing_id"], unique=False)

    op.create_table(
        "rental_index_daily",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("index_date", sa.Date(), nullable=False),
        *_index_stat_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "index_date",
            "city",
            "district",
            "bedrooms",
            "property_type",
            name="uq_rental_index_daily_bucket",
        ),
    )
    op.create_index("ix_rental_index_daily_index_date", "rental_index_daily", ["index_date"], unique=False)

    op.create_table(
        "rental_index_monthly",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("year_month", sa.String(length=7), nullable=False, comment="YYYY-MM"),
        *_index_stat_columns(),
        sa.Column("days_covered", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "year_month",
            "city",
            "district",
            "bedrooms",
            "property_type",
            name="uq_rental_index_monthly_bucket",
        ),
    )
    op.create_index("ix_rental_index_monthly_year_month", "rental_index_monthly", ["year_month"], unique=False)

    op.create_table(
        "job_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "job_type",
            sa.String(length=32),
            nullable=False,
            comment="DISCOVER, PROCESS_QUEUE, BUILD_DAILY_INDEX, BUILD_MONTHLY_INDEX, MARK_STALE",
        ),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column(
            "request_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Invocation parameters",
        ),
        sa.Column("counts", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_runs_job_type_status", "job_runs", ["job_type", "status"], unique=False)
    op.create_index("ix_job_runs_started_at", "job_runs", ["started_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_job_runs_started_at", table_name="job_runs")
    op.drop_index("ix_job_runs_job_type_status", table_name="job_runs")
    op.drop_table("job_runs")

    op.drop_index("ix_rental_index_monthly_year_month", table_name="rental_index_monthly")
    op.drop_table("rental_index_monthly")

    op.drop_index("ix_rental_index_daily_index_date", table_name="rental_index_daily")
    op.drop_table("rental_index_daily")

    op.drop_index("ix_rental_snapshots_listing_id", table_name="rental_snapshots")
    op.drop_index("ix_rental_snapshots_scraped_at", table_name="rental_snapshots")
    op.drop_table("rental_snapshots")

    op.drop_index("ix_rental_listings_city_district", table_name="rental_listings")
    op.drop_index("ix_rental_listings_active_last_seen", table_name="rental_listings")
    op.drop_index("ix_rental_listings_source_fingerprint", table_name="rental_listings")
    op.drop_index("ix_rental_listings_source_listing_id", table_name="rental_listings")
    op.drop_table("rental_listings")

    op.drop_index("ix_scrape_queue_claim_token", table_name="scrape_queue")
    op.drop_index("ix_scrape_queue_source_status_priority", table_name="scrape_queue")
    op.drop_table("scrape_queue")
