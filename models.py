import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def new_id() -> str:
    return uuid.uuid4().hex


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class PaymentMethod(str, Enum):
    debit = "Debit"
    credit = "Credit"
    cash = "Cash"


PAYMENT_METHOD_ENUM = SAEnum(
    PaymentMethod,
    name="paymentmethod",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TransactionSource(str, Enum):
    user = "user"
    goal = "goal"
    loan = "loan"
    recurring = "recurring"


class LoanStatus(str, Enum):
    active = "active"
    paid = "paid"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    cash = "cash"
    credit_card = "credit_card"


class NotificationType(str, Enum):
    budget_alert = "budget_alert"
    loan_reminder = "loan_reminder"


# Labels used on synthetic transactions; kept verbatim so existing
# budgets and reports keyed on them keep matching.
SAVINGS_CATEGORY = "Ahorros"
LOANS_CATEGORY = "Préstamos"

DEFAULT_CATEGORIES = {
    TransactionType.expense: [
        "Comida",
        "Transporte",
        "Vivienda",
        "Salud",
        "Entretenimiento",
        "Ropa",
        "Regalos",
        "Ocio",
        SAVINGS_CATEGORY,
        LOANS_CATEGORY,
        "Otros",
    ],
    TransactionType.income: [
        "Salario",
        "Freelance",
        "Inversiones",
        "Reembolsos",
        "Bonus",
        SAVINGS_CATEGORY,
        "Otros",
    ],
}


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        PAYMENT_METHOD_ENUM
    )
    bank_name: Mapped[Optional[str]] = mapped_column(String(100))
    date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[TransactionSource] = mapped_column(
        SAEnum(TransactionSource), nullable=False, default=TransactionSource.user
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_transaction_id: Mapped[Optional[str]] = mapped_column(String(80))
    goal_id: Mapped[Optional[str]] = mapped_column(String(80))
    loan_id: Mapped[Optional[str]] = mapped_column(String(80))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_transactions_owner_date", "owner_id", "date"),
        Index("ix_transactions_owner_type_date", "owner_id", "type", "date"),
        Index("ix_transactions_owner_category_date", "owner_id", "category", "date"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )


class BalanceAggregate(Base):
    __tablename__ = "balance_aggregates"

    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    debit_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    used_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credit_limit_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    opening_debit_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    opening_used_credit_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("debit_balance_cents >= 0", name="ck_aggregate_debit_floor"),
        CheckConstraint("used_credit_cents >= 0", name="ck_aggregate_credit_floor"),
    )


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings_goals"

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    goal_name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_savings_goals_owner", "owner_id"),
        CheckConstraint("target_amount_cents > 0", name="ck_goal_target_positive"),
        CheckConstraint(
            "current_amount_cents >= 0 AND current_amount_cents <= target_amount_cents",
            name="ck_goal_current_bounds",
        ),
    )


class Loan(Base, TimestampMixin):
    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    loan_name: Mapped[str] = mapped_column(String(120), nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    installments: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_payment_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[LoanStatus] = mapped_column(
        SAEnum(LoanStatus), nullable=False, default=LoanStatus.active
    )
    next_payment_date: Mapped[Optional[date]] = mapped_column(Date)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_loans_owner_status", "owner_id", "status"),
        CheckConstraint("total_amount_cents > 0", name="ck_loan_total_positive"),
        CheckConstraint("installments > 0", name="ck_loan_installments_positive"),
        CheckConstraint(
            "remaining_amount_cents >= 0 AND remaining_amount_cents <= total_amount_cents",
            name="ck_loan_remaining_bounds",
        ),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    limit_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "month", "category", name="uq_budget_owner_month_category"
        ),
        CheckConstraint("limit_cents > 0", name="ck_budget_limit_positive"),
    )


class RecurringTransaction(Base, TimestampMixin):
    __tablename__ = "recurring_transactions"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(80))
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        PAYMENT_METHOD_ENUM
    )
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_recurring_day", "day_of_month"),
        CheckConstraint("amount_cents > 0", name="ck_recurring_amount_positive"),
        CheckConstraint(
            "day_of_month >= 1 AND day_of_month <= 31", name="ck_recurring_day_range"
        ),
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    account_name: Mapped[str] = mapped_column(String(120), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False
    )
    current_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    used_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_accounts_owner", "owner_id"),)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(80), primary_key=True, default=new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(NotificationType), nullable=False
    )
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    month: Mapped[Optional[str]] = mapped_column(String(7))
    threshold: Mapped[Optional[int]] = mapped_column(Integer)
    loan_id: Mapped[Optional[str]] = mapped_column(String(80))
    amount_spent_cents: Mapped[Optional[int]] = mapped_column(Integer)
    budget_limit_cents: Mapped[Optional[int]] = mapped_column(Integer)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_notifications_owner_type_read", "owner_id", "type", "is_read"),
        Index("ix_notifications_created", "created_at"),
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
