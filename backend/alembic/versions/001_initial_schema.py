"""Initial schema: events, ticket types, waiting list, tickets, rate limit windows.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("organizer_id", sa.String(255), nullable=False),
        sa.Column("total_tickets", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("total_tickets > 0", name="check_total_tickets_positive"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_date", "events", ["date"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])

    # Ticket types: one row per type so a sale on one never rewrites siblings
    op.create_table(
        "ticket_types",
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), primary_key=True),
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("remaining", sa.Integer(), nullable=False),
        sa.Column("is_sold_out", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="check_ticket_type_quantity_positive"),
        sa.CheckConstraint("remaining >= 0", name="check_ticket_type_remaining_non_negative"),
        sa.CheckConstraint("remaining <= quantity", name="check_ticket_type_remaining_lte_quantity"),
    )

    # Waiting list
    op.create_table(
        "waiting_list",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("offer_expires_at", sa.BigInteger(), nullable=True),
        sa.Column("ticket_type_id", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 1", name="check_waiting_list_quantity_positive"),
        sa.CheckConstraint(
            "status IN ('waiting', 'offered', 'purchased', 'expired')",
            name="check_waiting_list_status",
        ),
    )
    op.create_index("ix_waiting_list_id", "waiting_list", ["id"])
    # Promoter scan: waiting entries of one event in FIFO order
    op.create_index("ix_waiting_list_event_status", "waiting_list", ["event_id", "status"])
    # Duplicate-join check on every admission
    op.create_index("ix_waiting_list_user_event", "waiting_list", ["user_id", "event_id"])
    # Cleanup sweep: offered entries past their deadline
    op.create_index("ix_waiting_list_status_expires", "waiting_list", ["status", "offer_expires_at"])

    # Tickets
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("waiting_list_id", sa.Integer(), sa.ForeignKey("waiting_list.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="valid"),
        sa.Column("ticket_type_id", sa.String(64), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=False),
        sa.Column("purchased_at", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('valid', 'used', 'refunded', 'cancelled')",
            name="check_ticket_status",
        ),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_payment_reference", "tickets", ["payment_reference"])
    # Sold-units count for availability
    op.create_index("ix_tickets_event_status", "tickets", ["event_id", "status"])

    # Rate limiter windows
    op.create_table(
        "rate_limit_windows",
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column("action", sa.String(64), primary_key=True),
        sa.Column("window_start", sa.BigInteger(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )


def downgrade() -> None:
    op.drop_table("rate_limit_windows")
    op.drop_index("ix_tickets_event_status", table_name="tickets")
    op.drop_index("ix_tickets_payment_reference", table_name="tickets")
    op.drop_index("ix_tickets_user_id", table_name="tickets")
    op.drop_index("ix_tickets_event_id", table_name="tickets")
    op.drop_index("ix_tickets_id", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("ix_waiting_list_status_expires", table_name="waiting_list")
    op.drop_index("ix_waiting_list_user_event", table_name="waiting_list")
    op.drop_index("ix_waiting_list_event_status", table_name="waiting_list")
    op.drop_index("ix_waiting_list_id", table_name="waiting_list")
    op.drop_table("waiting_list")
    op.drop_table("ticket_types")
    op.drop_index("ix_events_organizer_id", table_name="events")
    op.drop_index("ix_events_date", table_name="events")
    op.drop_index("ix_events_id", table_name="events")
    op.drop_table("events")
