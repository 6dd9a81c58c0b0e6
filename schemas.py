from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import (
    AccountType,
    LoanStatus,
    NotificationType,
    PaymentMethod,
    TransactionType,
)


class TransactionIn(BaseModel):
    type: TransactionType
    amount_cents: int
    description: str = Field(..., max_length=200)
    category: str = Field(..., max_length=100)
    payment_method: Optional[PaymentMethod] = None
    bank_name: Optional[str] = Field(default=None, max_length=100)
    date: date


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount_cents: int
    description: str
    category: str
    payment_method: Optional[PaymentMethod]
    bank_name: Optional[str]
    date: date
    is_recurring: bool
    recurring_transaction_id: Optional[str]


class TransactionCreatedOut(BaseModel):
    id: str


class CategoryTotalOut(BaseModel):
    category: str
    total_cents: int


class SummaryOut(BaseModel):
    start: date
    end: date
    income_cents: int
    expense_cents: int
    net_cents: int
    by_category: list[CategoryTotalOut]


class BalanceSetupIn(BaseModel):
    debit_balance_cents: int = Field(..., ge=0)
    credit_limit_cents: int = Field(..., ge=0)
    used_credit_cents: int = Field(default=0, ge=0)


class BalanceOut(BaseModel):
    debit_balance_cents: int
    used_credit_cents: int
    credit_limit_cents: int
    available_credit_cents: int


class SavingsGoalIn(BaseModel):
    goal_name: str = Field(..., max_length=120)
    target_amount_cents: int
    initial_amount_cents: int = 0


class SavingsGoalUpdateIn(BaseModel):
    goal_name: str = Field(..., max_length=120)
    target_amount_cents: int


class SavingsGoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    goal_name: str
    target_amount_cents: int
    current_amount_cents: int


class AmountIn(BaseModel):
    amount_cents: int


class LoanIn(BaseModel):
    loan_name: str = Field(..., max_length=120)
    total_amount_cents: int
    installments: int
    installments_paid: int = 0
    next_payment_date: Optional[date] = None


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    loan_name: str
    total_amount_cents: int
    installments: int
    monthly_payment_cents: int
    remaining_amount_cents: int
    status: LoanStatus
    next_payment_date: Optional[date]


class LoanPaymentOut(BaseModel):
    remaining_amount_cents: int
    status: LoanStatus


class BudgetIn(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    category: str = Field(..., min_length=1, max_length=100)
    limit_cents: int = Field(..., gt=0)


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    month: str
    category: str
    limit_cents: int


class RecurringTransactionIn(BaseModel):
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    payment_method: Optional[PaymentMethod] = None
    day_of_month: int = Field(..., ge=1, le=31)
    account_id: Optional[str] = None


class RecurringTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount_cents: int
    description: str
    category: str
    payment_method: Optional[PaymentMethod]
    day_of_month: int
    account_id: Optional[str]


class RecurringRunOut(BaseModel):
    processed_count: int
    skipped_count: int
    errors: list[dict[str, str]]


class AccountIn(BaseModel):
    account_name: str = Field(..., min_length=1, max_length=120)
    account_type: AccountType
    current_balance_cents: int = 0
    used_credit_cents: int = Field(default=0, ge=0)


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_name: str
    account_type: AccountType
    current_balance_cents: int
    used_credit_cents: int


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: NotificationType
    title: str
    message: str
    category: Optional[str]
    month: Optional[str]
    threshold: Optional[int]
    loan_id: Optional[str]
    is_read: bool


class ProfileIn(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=120)


class ResetOut(BaseModel):
    deleted_count: int
