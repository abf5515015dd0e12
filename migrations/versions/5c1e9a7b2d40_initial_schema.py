"""initial schema

Revision ID: 5c1e9a7b2d40
Revises:
Create Date: 2026-10-18 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e9a7b2d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

REGISTRATION_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "REJECTED", "FAILED")


def _string_enum(name: str, *values: str, length: int = 16) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=length)


def upgrade() -> None:
    """Create users, trackers, registrations, idempotency and outbox tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("global_name", sa.Text(), nullable=True),
        sa.Column("is_banned", sa.Boolean(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"])

    op.create_table(
        "trackers",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("canonical_url", sa.Text(), nullable=False),
        sa.Column("game", _string_enum("game", "ROCKET_LEAGUE", length=32), nullable=False),
        sa.Column(
            "platform",
            _string_enum("gameplatform", "STEAM", "EPIC", "XBL", "PSN", "SWITCH"),
            nullable=False,
        ),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column(
            "scraping_status",
            _string_enum("scrapingstatus", "PENDING", "IN_PROGRESS", "COMPLETED", "FAILED"),
            nullable=False,
        ),
        sa.Column("scraping_error", sa.Text(), nullable=True),
        sa.Column("scraping_attempts", sa.Integer(), nullable=False),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("canonical_url", name="uq_trackers_canonical_url"),
    )
    op.create_index("ix_trackers_platform", "trackers", ["platform"])
    op.create_index("ix_trackers_user_id", "trackers", ["user_id"])

    op.create_table(
        "tracker_registrations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("guild_id", sa.String(length=32), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("canonical_url", sa.Text(), nullable=False),
        sa.Column("game", _string_enum("game", "ROCKET_LEAGUE", length=32), nullable=False),
        sa.Column(
            "platform",
            _string_enum("gameplatform", "STEAM", "EPIC", "XBL", "PSN", "SWITCH"),
            nullable=True,
        ),
        sa.Column("username", sa.String(length=100), nullable=True),
        sa.Column(
            "status", _string_enum("registrationstatus", *REGISTRATION_STATUSES), nullable=False
        ),
        sa.Column("processed_by", sa.String(length=32), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("tracker_id", sa.String(length=36), nullable=True),
        sa.Column("notification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notification_attempts", sa.Integer(), nullable=False),
        sa.Column("last_processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tracker_id"], ["trackers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tracker_id", name="uq_tracker_registrations_tracker_id"),
    )
    op.create_index(
        "uq_tracker_registrations_active_url",
        "tracker_registrations",
        ["canonical_url"],
        unique=True,
        sqlite_where=sa.text("status != 'REJECTED'"),
        postgresql_where=sa.text("status != 'REJECTED'"),
    )
    op.create_index(
        "ix_tracker_registrations_guild_status",
        "tracker_registrations",
        ["guild_id", "status", "created_at"],
    )
    op.create_index(
        "ix_tracker_registrations_user_id", "tracker_registrations", ["user_id"]
    )

    op.create_table(
        "processed_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("event_key", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_key", name="uq_processed_events_event_key"),
    )
    op.create_index("ix_processed_events_entity_id", "processed_events", ["entity_id"])

    op.create_table(
        "outbox",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("source_type", sa.String(length=64), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            _string_enum("outboxstatus", "PENDING", "PROCESSING", "COMPLETED", "FAILED"),
            nullable=False,
        ),
        sa.Column("retry_count", sa.SmallInteger(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_outbox_status_created_at", "outbox", ["status", "created_at"])
    op.create_index("ix_outbox_source", "outbox", ["source_type", "source_id"])


def downgrade() -> None:
    """Drop all tables created by this revision."""
    op.drop_index("ix_outbox_source", table_name="outbox")
    op.drop_index("ix_outbox_status_created_at", table_name="outbox")
    op.drop_table("outbox")
    op.drop_index("ix_processed_events_entity_id", table_name="processed_events")
    op.drop_table("processed_events")
    op.drop_index("ix_tracker_registrations_user_id", table_name="tracker_registrations")
    op.drop_index("ix_tracker_registrations_guild_status", table_name="tracker_registrations")
    op.drop_index("uq_tracker_registrations_active_url", table_name="tracker_registrations")
    op.drop_table("tracker_registrations")
    op.drop_index("ix_trackers_user_id", table_name="trackers")
    op.drop_index("ix_trackers_platform", table_name="trackers")
    op.drop_table("trackers")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
