"""initial ledger schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")
PAYMENT_METHOD = sa.Enum("Debit", "Credit", "Cash", name="paymentmethod")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=80), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD),
        sa.Column("bank_name", sa.String(length=100)),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "source",
            sa.Enum("user", "goal", "loan", "recurring", name="transactionsource"),
            nullable=False,
        ),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("recurring_transaction_id", sa.String(length=80)),
        sa.Column("goal_id", sa.String(length=80)),
        sa.Column("loan_id", sa.String(length=80)),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_owner_date", "transactions", ["owner_id", "date"])
    op.create_index(
        "ix_transactions_owner_type_date", "transactions", ["owner_id", "type", "date"]
    )
    op.create_index(
        "ix_transactions_owner_category_date",
        "transactions",
        ["owner_id", "category", "date"],
    )

    op.create_table(
        "balance_aggregates",
        sa.Column("owner_id", sa.String(length=128), primary_key=True),
        sa.Column(
            "debit_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("used_credit_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "credit_limit_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "opening_debit_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "opening_used_credit_cents",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.CheckConstraint("debit_balance_cents >= 0", name="ck_aggregate_debit_floor"),
        sa.CheckConstraint("used_credit_cents >= 0", name="ck_aggregate_credit_floor"),
    )

    op.create_table(
        "savings_goals",
        sa.Column("id", sa.String(length=80), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("goal_name", sa.String(length=120), nullable=False),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("target_amount_cents > 0", name="ck_goal_target_positive"),
        sa.CheckConstraint(
            "current_amount_cents >= 0 AND current_amount_cents <= target_amount_cents",
            name="ck_goal_current_bounds",
        ),
    )
    op.create_index("ix_savings_goals_owner", "savings_goals", ["owner_id"])

    op.create_table(
        "loans",
        sa.Column("id", sa.String(length=80), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("loan_name", sa.String(length=120), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("installments", sa.Integer(), nullable=False),
        sa.Column("monthly_payment_cents", sa.Integer(), nullable=False),
        sa.Column("remaining_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "status", sa.Enum("active", "paid", name="loanstatus"), nullable=False
        ),
        sa.Column("next_payment_date", sa.Date()),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("total_amount_cents > 0", name="ck_loan_total_positive"),
        sa.CheckConstraint("installments > 0", name="ck_loan_installments_positive"),
        sa.CheckConstraint(
            "remaining_amount_cents >= 0 AND remaining_amount_cents <= total_amount_cents",
            name="ck_loan_remaining_bounds",
        ),
    )
    op.create_index("ix_loans_owner_status", "loans", ["owner_id", "status"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.String(length=80), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("limit_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "owner_id", "month", "category", name="uq_budget_owner_month_category"
        ),
        sa.CheckConstraint("limit_cents > 0", name="ck_budget_limit_positive"),
    )

    op.create_table(
        "recurring_transactions",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("account_id", sa.String(length=80)),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD),
        sa.Column("day_of_month", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_recurring_amount_positive"),
        sa.CheckConstraint(
            "day_of_month >= 1 AND day_of_month <= 31", name="ck_recurring_day_range"
        ),
    )
    op.create_index("ix_recurring_day", "recurring_transactions", ["day_of_month"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=80), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("account_name", sa.String(length=120), nullable=False),
        sa.Column(
            "account_type",
            sa.Enum("checking", "savings", "cash", "credit_card", name="accounttype"),
            nullable=False,
        ),
        sa.Column(
            "current_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("used_credit_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_accounts_owner", "accounts", ["owner_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=80), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column(
            "type",
            sa.Enum("budget_alert", "loan_reminder", name="notificationtype"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=100)),
        sa.Column("month", sa.String(length=7)),
        sa.Column("threshold", sa.Integer()),
        sa.Column("loan_id", sa.String(length=80)),
        sa.Column("amount_spent_cents", sa.Integer()),
        sa.Column("budget_limit_cents", sa.Integer()),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_notifications_owner_type_read",
        "notifications",
        ["owner_id", "type", "is_read"],
    )
    op.create_index("ix_notifications_created", "notifications", ["created_at"])

    op.create_table(
        "profiles",
        sa.Column("owner_id", sa.String(length=128), primary_key=True),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("profiles")
    op.drop_index("ix_notifications_created", table_name="notifications")
    op.drop_index("ix_notifications_owner_type_read", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_accounts_owner", table_name="accounts")
    op.drop_table("accounts")
    op.drop_index("ix_recurring_day", table_name="recurring_transactions")
    op.drop_table("recurring_transactions")
    op.drop_table("budgets")
    op.drop_index("ix_loans_owner_status", table_name="loans")
    op.drop_table("loans")
    op.drop_index("ix_savings_goals_owner", table_name="savings_goals")
    op.drop_table("savings_goals")
    op.drop_table("balance_aggregates")
    op.drop_index("ix_transactions_owner_category_date", table_name="transactions")
    op.drop_index("ix_transactions_owner_type_date", table_name="transactions")
    op.drop_index("ix_transactions_owner_date", table_name="transactions")
    op.drop_table("transactions")
