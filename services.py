from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.orm import Session

from alerts import BudgetAlertEvaluator
from balances import (
    BalanceSnapshot,
    LedgerEntry,
    LedgerWriter,
    ensure_aggregate,
)
from config import get_settings
from database import atomic
from errors import (
    AuthorizationError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from models import (
    DEFAULT_CATEGORIES,
    LOANS_CATEGORY,
    SAVINGS_CATEGORY,
    Account,
    AccountType,
    BalanceAggregate,
    Budget,
    Loan,
    LoanStatus,
    Notification,
    PaymentMethod,
    Profile,
    RecurringTransaction,
    SavingsGoal,
    Transaction,
    TransactionSource,
    TransactionType,
)
from periods import Period, add_months, local_today
from schemas import (
    AccountIn,
    BalanceSetupIn,
    BudgetIn,
    LoanIn,
    ProfileIn,
    RecurringTransactionIn,
    SavingsGoalIn,
    SavingsGoalUpdateIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)


def _require_owner(owner_id: Optional[str]) -> str:
    if not owner_id or not owner_id.strip():
        raise AuthorizationError("An authenticated owner is required")
    return owner_id


def validate_transaction(data: TransactionIn, *, today: Optional[date] = None) -> None:
    """Reject out-of-policy input before anything is staged."""
    settings = get_settings()
    today = today or local_today()
    if data.amount_cents <= 0:
        raise ValidationError("Amount must be greater than 0")
    if data.amount_cents > settings.max_amount_cents:
        raise ValidationError("Amount is too large")
    if len(data.description.strip()) < 3:
        raise ValidationError("Description must be at least 3 characters")
    if not data.category.strip():
        raise ValidationError("Category is required")
    if data.type == TransactionType.expense and data.payment_method is None:
        raise ValidationError("Payment method is required for expenses")
    if data.date > today:
        raise ValidationError("Date cannot be in the future")
    if data.date < today - timedelta(days=settings.backdate_days):
        raise ValidationError("Date cannot be more than one year in the past")


def _validate_amount(amount_cents: int) -> None:
    if amount_cents <= 0:
        raise ValidationError("Amount must be greater than 0")
    if amount_cents > get_settings().max_amount_cents:
        raise ValidationError("Amount is too large")


def _validate_name(name: str, label: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} is required")
    return cleaned


def monthly_payment_for(total_amount_cents: int, installments: int) -> int:
    return int(
        (Decimal(total_amount_cents) / Decimal(installments)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


def _evaluate_budget_alert(session: Session, txn: Transaction) -> None:
    # The ledger write is already committed; an alert failure must not undo it.
    try:
        BudgetAlertEvaluator(session).evaluate(txn)
    except LedgerError:
        logger.exception(f"budget_alert: transaction={txn.id} failed")


class CategoryResolver:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = owner_id

    def known_labels(self, txn_type: Optional[TransactionType]) -> set[str]:
        types = [txn_type] if txn_type else list(TransactionType)
        labels: set[str] = set()
        for t in types:
            labels.update(DEFAULT_CATEGORIES[t])
        stmt = select(Transaction.category).where(Transaction.owner_id == self.owner_id)
        if txn_type:
            stmt = stmt.where(Transaction.type == txn_type)
        labels.update(self.session.scalars(stmt.distinct()).all())
        if txn_type in (None, TransactionType.expense):
            labels.update(
                self.session.scalars(
                    select(Budget.category)
                    .where(Budget.owner_id == self.owner_id)
                    .distinct()
                ).all()
            )
        return labels

    def resolve(self, label: str, txn_type: Optional[TransactionType] = None) -> str:
        """Snap a free-form label to a known one within a single edit."""
        raw = (label or "").strip()
        if not raw:
            return raw
        input_lower = raw.lower()
        known = self.known_labels(txn_type)
        for candidate in known:
            if candidate.lower() == input_lower:
                return candidate

        best_distance: Optional[int] = None
        best: list[str] = []
        for candidate in known:
            dist = int(Levenshtein.distance(input_lower, candidate.lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [candidate]
            elif dist == best_distance:
                best.append(candidate)

        if best_distance is not None and best_distance <= 1 and len(raw) > 3:
            if len(best) > 1:
                options = ", ".join(sorted(best))
                raise ValidationError(
                    f"Category '{raw}' is ambiguous; matches: {options}"
                )
            return best[0]
        return raw


@dataclass(frozen=True)
class TransactionSummary:
    period: Period
    income_cents: int
    expense_cents: int
    by_category: list[dict[str, object]]

    @property
    def net_cents(self) -> int:
        return self.income_cents - self.expense_cents


class TransactionService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def _apply_fields(self, txn: Transaction, data: TransactionIn) -> None:
        txn.type = data.type
        txn.amount_cents = data.amount_cents
        txn.description = data.description.strip()
        txn.category = CategoryResolver(self.session, self.owner_id).resolve(
            data.category, data.type
        )
        txn.payment_method = data.payment_method
        txn.bank_name = data.bank_name or None
        txn.date = data.date

    def create(self, data: TransactionIn) -> Transaction:
        validate_transaction(data)
        txn = Transaction(source=TransactionSource.user)
        self._apply_fields(txn, data)
        with atomic(self.session):
            LedgerWriter(self.session, self.owner_id).stage_create(txn)
        logger.info(
            f"transaction_created: owner={self.owner_id} id={txn.id} "
            f"type={txn.type.value} amount={txn.amount_cents}"
        )
        _evaluate_budget_alert(self.session, txn)
        return txn

    def get(self, transaction_id: str) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.owner_id != self.owner_id:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: str, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        validate_transaction(data)
        previous = LedgerEntry.of(txn)
        with atomic(self.session):
            self._apply_fields(txn, data)
            LedgerWriter(self.session, self.owner_id).stage_update(previous, txn)
        logger.info(
            f"transaction_updated: owner={self.owner_id} id={txn.id} "
            f"amount={previous.amount_cents}->{txn.amount_cents}"
        )
        _evaluate_budget_alert(self.session, txn)
        return txn

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        with atomic(self.session):
            LedgerWriter(self.session, self.owner_id).stage_delete(txn)
        logger.info(f"transaction_deleted: owner={self.owner_id} id={transaction_id}")

    def list(
        self,
        period: Period,
        *,
        txn_type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.owner_id == self.owner_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        if txn_type:
            stmt = stmt.where(Transaction.type == txn_type)
        if category:
            stmt = stmt.where(Transaction.category == category)
        return self.session.scalars(stmt).all()

    def summary(self, period: Period) -> TransactionSummary:
        """Income and expense totals for ``period`` plus expense per category."""
        in_period = (
            Transaction.owner_id == self.owner_id,
            Transaction.date.between(period.start, period.end),
        )
        totals_stmt = select(
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == TransactionType.income, Transaction.amount_cents),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == TransactionType.expense, Transaction.amount_cents),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(*in_period)
        income, expense = self.session.execute(totals_stmt).one()

        total = func.sum(Transaction.amount_cents).label("total")
        category_stmt = (
            select(Transaction.category, total)
            .where(*in_period, Transaction.type == TransactionType.expense)
            .group_by(Transaction.category)
            .order_by(total.desc(), Transaction.category)
        )
        by_category = [
            {"category": name, "total_cents": int(amount)}
            for name, amount in self.session.execute(category_stmt).all()
        ]
        return TransactionSummary(
            period=period,
            income_cents=int(income),
            expense_cents=int(expense),
            by_category=by_category,
        )


class BalanceService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def _aggregate(self) -> Optional[BalanceAggregate]:
        # Aggregate rows are changed by server-side increments, so never
        # trust the identity map copy.
        return self.session.get(
            BalanceAggregate, self.owner_id, populate_existing=True
        )

    def snapshot(self) -> BalanceSnapshot:
        return BalanceSnapshot.of(self._aggregate())

    def _ledger_totals(self) -> tuple[int, int]:
        """Net debit and credit effect of the whole ledger, unclamped."""
        income = self._sum(Transaction.type == TransactionType.income)
        debit_expense = self._sum(
            Transaction.type == TransactionType.expense,
            Transaction.payment_method.is_distinct_from(PaymentMethod.credit),
        )
        credit_expense = self._sum(
            Transaction.type == TransactionType.expense,
            Transaction.payment_method == PaymentMethod.credit,
        )
        return income - debit_expense, credit_expense

    def _sum(self, *conditions) -> int:
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                    Transaction.owner_id == self.owner_id, *conditions
                )
            ).scalar_one()
            or 0
        )

    def setup(self, data: BalanceSetupIn) -> BalanceSnapshot:
        """Set the balances the user reports today.

        The opening values are stored relative to the current ledger so that
        :meth:`rebuild_from_ledger` reproduces exactly these balances.
        """
        if data.used_credit_cents > data.credit_limit_cents:
            raise ValidationError("Used credit cannot exceed the credit limit")
        net_debit, net_credit = self._ledger_totals()
        with atomic(self.session):
            ensure_aggregate(self.session, self.owner_id)
            self.session.execute(
                update(BalanceAggregate)
                .where(BalanceAggregate.owner_id == self.owner_id)
                .values(
                    debit_balance_cents=data.debit_balance_cents,
                    used_credit_cents=data.used_credit_cents,
                    credit_limit_cents=data.credit_limit_cents,
                    opening_debit_cents=data.debit_balance_cents - net_debit,
                    opening_used_credit_cents=data.used_credit_cents - net_credit,
                    version=BalanceAggregate.version + 1,
                    last_updated=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
        logger.info(f"balance_setup: owner={self.owner_id}")
        return self.snapshot()

    def rebuild_from_ledger(self) -> BalanceSnapshot:
        """Recovery operation: recompute the aggregate from the full ledger."""
        net_debit, net_credit = self._ledger_totals()
        with atomic(self.session):
            ensure_aggregate(self.session, self.owner_id)
            aggregate = self._aggregate()
            before = BalanceSnapshot.of(aggregate)
            aggregate.debit_balance_cents = max(
                0, aggregate.opening_debit_cents + net_debit
            )
            aggregate.used_credit_cents = max(
                0, aggregate.opening_used_credit_cents + net_credit
            )
            aggregate.version += 1
            aggregate.last_updated = datetime.utcnow()
        after = self.snapshot()
        logger.info(
            f"balance_rebuild: owner={self.owner_id} "
            f"debit={before.debit_balance_cents}->{after.debit_balance_cents} "
            f"credit={before.used_credit_cents}->{after.used_credit_cents}"
        )
        return after


@dataclass(frozen=True)
class GoalMovement:
    """One user action on a goal: the goal change plus its synthetic transaction."""

    goal: SavingsGoal
    transaction: Transaction


class SavingsGoalService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        name = _validate_name(data.goal_name, "Goal name")
        if data.target_amount_cents <= 0:
            raise ValidationError("Target amount must be greater than 0")
        if data.initial_amount_cents < 0:
            raise ValidationError("Current amount cannot be negative")
        if data.initial_amount_cents > data.target_amount_cents:
            raise ValidationError("Current amount cannot exceed the target")
        goal = SavingsGoal(
            owner_id=self.owner_id,
            goal_name=name,
            target_amount_cents=data.target_amount_cents,
            current_amount_cents=data.initial_amount_cents,
        )
        with atomic(self.session):
            self.session.add(goal)
        return goal

    def get(self, goal_id: str) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal or goal.owner_id != self.owner_id:
            raise NotFoundError("Savings goal not found")
        return goal

    def list(self) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.owner_id == self.owner_id)
            .order_by(SavingsGoal.created_at.desc())
        )
        return self.session.scalars(stmt).all()

    def _move(
        self, goal: SavingsGoal, change_cents: int, txn: Transaction
    ) -> GoalMovement:
        txn.source = TransactionSource.goal
        txn.goal_id = goal.id
        txn.category = SAVINGS_CATEGORY
        txn.date = local_today()
        with atomic(self.session):
            goal.current_amount_cents += change_cents
            LedgerWriter(self.session, self.owner_id).stage_create(txn)
        return GoalMovement(goal=goal, transaction=txn)

    def contribute(self, goal_id: str, amount_cents: int) -> GoalMovement:
        goal = self.get(goal_id)
        _validate_amount(amount_cents)
        headroom = goal.target_amount_cents - goal.current_amount_cents
        if amount_cents > headroom:
            raise ValidationError("Amount exceeds the goal target")
        available = BalanceService(self.session, self.owner_id).snapshot()
        if amount_cents > available.debit_balance_cents:
            raise ValidationError("Insufficient funds in your balance")
        movement = self._move(
            goal,
            amount_cents,
            Transaction(
                type=TransactionType.expense,
                amount_cents=amount_cents,
                description=f"Contribution to {goal.goal_name}",
                payment_method=PaymentMethod.debit,
            ),
        )
        logger.info(
            f"goal_contribution: owner={self.owner_id} goal={goal.id} amount={amount_cents}"
        )
        _evaluate_budget_alert(self.session, movement.transaction)
        return movement

    def withdraw(self, goal_id: str, amount_cents: int) -> GoalMovement:
        goal = self.get(goal_id)
        _validate_amount(amount_cents)
        if amount_cents > goal.current_amount_cents:
            raise ValidationError("Cannot withdraw more than the goal holds")
        movement = self._move(
            goal,
            -amount_cents,
            Transaction(
                type=TransactionType.income,
                amount_cents=amount_cents,
                description=f"Withdrawal from {goal.goal_name}",
            ),
        )
        logger.info(
            f"goal_withdrawal: owner={self.owner_id} goal={goal.id} amount={amount_cents}"
        )
        return movement

    def update(self, goal_id: str, data: SavingsGoalUpdateIn) -> SavingsGoal:
        goal = self.get(goal_id)
        name = _validate_name(data.goal_name, "Goal name")
        if data.target_amount_cents <= 0:
            raise ValidationError("Target amount must be greater than 0")
        if data.target_amount_cents < goal.current_amount_cents:
            raise ValidationError("Target cannot be lower than the current amount")
        with atomic(self.session):
            goal.goal_name = name
            goal.target_amount_cents = data.target_amount_cents
        return goal

    def delete(self, goal_id: str) -> None:
        goal = self.get(goal_id)
        with atomic(self.session):
            # Contributions and withdrawals stay in the ledger as history.
            self.session.execute(
                update(Transaction)
                .where(
                    Transaction.owner_id == self.owner_id,
                    Transaction.goal_id == goal.id,
                )
                .values(goal_id=None)
                .execution_options(synchronize_session=False)
            )
            self.session.delete(goal)
        logger.info(f"goal_deleted: owner={self.owner_id} goal={goal_id}")


@dataclass(frozen=True)
class LoanPaymentResult:
    remaining_amount_cents: int
    status: LoanStatus
    transaction_id: str


class LoanService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def create(self, data: LoanIn) -> Loan:
        name = _validate_name(data.loan_name, "Loan name")
        if data.total_amount_cents <= 0:
            raise ValidationError("Total amount must be greater than 0")
        if data.installments <= 0:
            raise ValidationError("Installments must be greater than 0")
        if data.installments_paid < 0:
            raise ValidationError("Paid installments cannot be negative")
        if data.installments_paid > data.installments:
            raise ValidationError("Paid installments cannot exceed the total")

        monthly = monthly_payment_for(data.total_amount_cents, data.installments)
        remaining = max(0, data.total_amount_cents - data.installments_paid * monthly)
        loan = Loan(
            owner_id=self.owner_id,
            loan_name=name,
            total_amount_cents=data.total_amount_cents,
            installments=data.installments,
            monthly_payment_cents=monthly,
            remaining_amount_cents=remaining,
            status=LoanStatus.paid if remaining <= 0 else LoanStatus.active,
            next_payment_date=data.next_payment_date,
        )
        with atomic(self.session):
            self.session.add(loan)
        return loan

    def get(self, loan_id: str) -> Loan:
        loan = self.session.get(Loan, loan_id)
        if not loan or loan.owner_id != self.owner_id:
            raise NotFoundError("Loan not found")
        return loan

    def list(self) -> list[Loan]:
        stmt = (
            select(Loan)
            .where(Loan.owner_id == self.owner_id)
            .order_by(Loan.created_at.desc())
        )
        return self.session.scalars(stmt).all()

    def pay(self, loan_id: str, amount_cents: int) -> LoanPaymentResult:
        loan = self.get(loan_id)
        if loan.status == LoanStatus.paid or loan.remaining_amount_cents <= 0:
            raise ValidationError("This loan is already paid off")
        _validate_amount(amount_cents)
        remaining = loan.remaining_amount_cents
        if amount_cents > remaining:
            raise ValidationError("Amount exceeds the outstanding balance")
        minimum = min(loan.monthly_payment_cents, remaining)
        if amount_cents < minimum:
            raise ValidationError(f"The minimum payment is {minimum}")
        available = BalanceService(self.session, self.owner_id).snapshot()
        if amount_cents > available.debit_balance_cents:
            raise ValidationError("Insufficient funds in your balance")

        txn = Transaction(
            type=TransactionType.expense,
            amount_cents=amount_cents,
            description=f"Loan payment: {loan.loan_name}",
            category=LOANS_CATEGORY,
            payment_method=PaymentMethod.debit,
            date=local_today(),
            source=TransactionSource.loan,
            loan_id=loan.id,
        )
        with atomic(self.session):
            loan.remaining_amount_cents = max(0, remaining - amount_cents)
            if loan.remaining_amount_cents == 0:
                loan.status = LoanStatus.paid
                loan.next_payment_date = None
            elif loan.next_payment_date is not None:
                loan.next_payment_date = add_months(loan.next_payment_date, 1)
            LedgerWriter(self.session, self.owner_id).stage_create(txn)

        logger.info(
            f"loan_payment: owner={self.owner_id} loan={loan.id} amount={amount_cents} "
            f"remaining={loan.remaining_amount_cents} status={loan.status.value}"
        )
        _evaluate_budget_alert(self.session, txn)
        return LoanPaymentResult(
            remaining_amount_cents=loan.remaining_amount_cents,
            status=loan.status,
            transaction_id=txn.id,
        )

    def delete(self, loan_id: str) -> None:
        loan = self.get(loan_id)
        with atomic(self.session):
            # Payments stay in the ledger as history.
            self.session.execute(
                update(Transaction)
                .where(
                    Transaction.owner_id == self.owner_id,
                    Transaction.loan_id == loan.id,
                )
                .values(loan_id=None)
                .execution_options(synchronize_session=False)
            )
            self.session.delete(loan)
        logger.info(f"loan_deleted: owner={self.owner_id} loan={loan_id}")


class BudgetService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def upsert(self, data: BudgetIn) -> Budget:
        category = CategoryResolver(self.session, self.owner_id).resolve(
            data.category, TransactionType.expense
        )
        budget = self.session.scalar(
            select(Budget).where(
                Budget.owner_id == self.owner_id,
                Budget.month == data.month,
                Budget.category == category,
            )
        )
        with atomic(self.session):
            if budget is None:
                budget = Budget(
                    owner_id=self.owner_id,
                    month=data.month,
                    category=category,
                    limit_cents=data.limit_cents,
                )
                self.session.add(budget)
            else:
                budget.limit_cents = data.limit_cents
        return budget

    def list(self, month: Optional[str] = None) -> list[Budget]:
        stmt = select(Budget).where(Budget.owner_id == self.owner_id)
        if month:
            stmt = stmt.where(Budget.month == month)
        return self.session.scalars(stmt.order_by(Budget.month, Budget.category)).all()

    def delete(self, budget_id: str) -> None:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.owner_id != self.owner_id:
            raise NotFoundError("Budget not found")
        with atomic(self.session):
            self.session.delete(budget)


class AccountService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def create(self, data: AccountIn) -> Account:
        if data.account_type != AccountType.credit_card and data.used_credit_cents:
            raise ValidationError("Only credit card accounts track used credit")
        account = Account(
            owner_id=self.owner_id,
            account_name=data.account_name.strip(),
            account_type=data.account_type,
            current_balance_cents=data.current_balance_cents,
            used_credit_cents=data.used_credit_cents,
        )
        with atomic(self.session):
            self.session.add(account)
        return account

    def get(self, account_id: str) -> Account:
        account = self.session.get(Account, account_id, populate_existing=True)
        if not account or account.owner_id != self.owner_id:
            raise NotFoundError("Account not found")
        return account

    def list(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.owner_id == self.owner_id)
            .order_by(Account.account_name)
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).all()


class RecurringTransactionService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def create(self, data: RecurringTransactionIn) -> RecurringTransaction:
        _validate_amount(data.amount_cents)
        if data.type == TransactionType.expense and data.payment_method is None:
            raise ValidationError("Payment method is required for expenses")
        if data.account_id:
            AccountService(self.session, self.owner_id).get(data.account_id)
        template = RecurringTransaction(
            owner_id=self.owner_id,
            account_id=data.account_id,
            type=data.type,
            amount_cents=data.amount_cents,
            description=data.description.strip(),
            category=CategoryResolver(self.session, self.owner_id).resolve(
                data.category, data.type
            ),
            payment_method=data.payment_method,
            day_of_month=data.day_of_month,
        )
        with atomic(self.session):
            self.session.add(template)
        return template

    def list(self) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .where(RecurringTransaction.owner_id == self.owner_id)
            .order_by(RecurringTransaction.day_of_month)
        )
        return self.session.scalars(stmt).all()

    def delete(self, template_id: str) -> None:
        template = self.session.get(RecurringTransaction, template_id)
        if not template or template.owner_id != self.owner_id:
            raise NotFoundError("Recurring transaction not found")
        with atomic(self.session):
            self.session.delete(template)


class NotificationService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def list(self, unread_only: bool = False, limit: int = 100) -> list[Notification]:
        stmt = select(Notification).where(Notification.owner_id == self.owner_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        return self.session.scalars(stmt).all()

    def mark_read(self, notification_id: str) -> None:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.owner_id != self.owner_id:
            raise NotFoundError("Notification not found")
        with atomic(self.session):
            notification.is_read = True


class ProfileService:
    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = _require_owner(owner_id)

    def upsert(self, data: ProfileIn) -> Profile:
        profile = self.session.get(Profile, self.owner_id)
        with atomic(self.session):
            if profile is None:
                profile = Profile(
                    owner_id=self.owner_id, display_name=data.display_name.strip()
                )
                self.session.add(profile)
            else:
                profile.display_name = data.display_name.strip()
        return profile


@dataclass(frozen=True)
class ResetResult:
    deleted_count: int


class ResetService:
    # Owned collections, emptied in this order before the singletons.
    OWNED_MODELS = (
        Transaction,
        SavingsGoal,
        Loan,
        Budget,
        RecurringTransaction,
        Notification,
        Account,
    )

    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()

    def reset_all_user_data(
        self, owner_id: str, authenticated_owner_id: Optional[str]
    ) -> ResetResult:
        owner_id = _require_owner(owner_id)
        if authenticated_owner_id != owner_id:
            raise AuthorizationError("You can only reset your own data")

        batch_size = max(1, self.settings.batch_size)
        total_deleted = 0
        for model in self.OWNED_MODELS:
            ids = self.session.scalars(
                select(model.id).where(model.owner_id == owner_id)
            ).all()
            for start in range(0, len(ids), batch_size):
                chunk = ids[start : start + batch_size]
                with atomic(self.session):
                    result = self.session.execute(
                        delete(model)
                        .where(model.owner_id == owner_id, model.id.in_(chunk))
                        .execution_options(synchronize_session=False)
                    )
                total_deleted += result.rowcount or 0
                logger.info(
                    f"reset: owner={owner_id} table={model.__tablename__} "
                    f"deleted={result.rowcount}"
                )

        for singleton in (BalanceAggregate, Profile):
            with atomic(self.session):
                self.session.execute(
                    delete(singleton)
                    .where(singleton.owner_id == owner_id)
                    .execution_options(synchronize_session=False)
                )
        self.session.expunge_all()
        logger.info(f"reset: owner={owner_id} total_deleted={total_deleted}")
        return ResetResult(deleted_count=total_deleted)
