"""initial schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(14, 2)

TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "checking",
                "savings",
                "credit",
                "investment",
                "other",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("starting_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("icon", sa.String(length=40), nullable=False, server_default="banknote"),
        sa.Column("color", sa.String(length=9), nullable=False, server_default="#34C759"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("icon", sa.String(length=40)),
        sa.Column("color", sa.String(length=9)),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("is_estimated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "cancelled", name="transactionstatus"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index(
        "ix_transactions_account_status_date",
        "transactions",
        ["account_id", "status", "date"],
    )

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "frequency",
            sa.Enum(
                "once",
                "weekly",
                "biweekly",
                "monthly",
                "twice_monthly",
                "annual",
                name="frequency",
            ),
            nullable=False,
        ),
        sa.Column("anchor_date", sa.Date(), nullable=False),
        sa.Column("first_monthly_day", sa.Integer()),
        sa.Column("second_monthly_day", sa.Integer()),
        sa.Column("last_processed", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint(
            "first_monthly_day IS NULL OR first_monthly_day BETWEEN 1 AND 31",
            name="ck_schedule_first_day_range",
        ),
        sa.CheckConstraint(
            "second_monthly_day IS NULL OR second_monthly_day BETWEEN 1 AND 31",
            name="ck_schedule_second_day_range",
        ),
    )

    op.create_table(
        "completed_occurrences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("occurrence_date", sa.Date(), nullable=False),
        sa.UniqueConstraint(
            "transaction_id",
            "occurrence_date",
            name="uq_completed_occurrence_txn_date",
        ),
    )


def downgrade():
    op.drop_table("completed_occurrences")
    op.drop_table("schedules")
    op.drop_index("ix_transactions_account_status_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_table("accounts")
