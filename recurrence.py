import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import case, or_, select, update
from sqlalchemy.orm import Session

from alerts import BudgetAlertEvaluator
from balances import LedgerWriter
from config import get_settings
from database import atomic
from errors import ConflictError, LedgerError, NotFoundError, ValidationError
from models import (
    Account,
    AccountType,
    RecurringTransaction,
    Transaction,
    TransactionSource,
    TransactionType,
)
from periods import is_last_day_of_month, local_today, month_key

logger = logging.getLogger(__name__)


def recurring_transaction_id(template_id: str, on: date) -> str:
    """Idempotency key: one posting per template per calendar month."""
    return f"recurring_{template_id}_{month_key(on)}"


@dataclass
class RecurringRunResult:
    processed_count: int = 0
    skipped_count: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    posted_ids: list[str] = field(default_factory=list)


class RecurringProcessor:
    def __init__(self, session: Session) -> None:
        self.session = session

    def due_templates(self, as_of: date) -> list[RecurringTransaction]:
        day_matches = RecurringTransaction.day_of_month == as_of.day
        if is_last_day_of_month(as_of):
            # Days 29-31 still post in shorter months, on their last day.
            day_matches = or_(day_matches, RecurringTransaction.day_of_month > as_of.day)
        stmt = (
            select(RecurringTransaction)
            .where(day_matches)
            .order_by(RecurringTransaction.owner_id, RecurringTransaction.id)
        )
        return self.session.scalars(stmt).all()

    def run(
        self, as_of: Optional[date] = None, *, today: Optional[date] = None
    ) -> RecurringRunResult:
        today = today or local_today()
        as_of = as_of or today
        self._check_window(as_of, today)
        templates = self.due_templates(as_of)
        result = RecurringRunResult()
        logger.info(f"recurring_run: as_of={as_of} templates={len(templates)}")

        for template in templates:
            template_id = template.id
            txn_id = recurring_transaction_id(template_id, as_of)
            try:
                with atomic(self.session):
                    posted = self._post(template, txn_id, as_of)
            except ConflictError as exc:
                if self.session.get(Transaction, txn_id) is None:
                    logger.error(
                        f"recurring_run: template={template_id} as_of={as_of} "
                        f"conflict without a posted row: {exc}"
                    )
                    result.errors.append(
                        {"template_id": template_id, "error": str(exc)}
                    )
                    continue
                # Another run inserted the same deterministic id first.
                posted = False
            except Exception as exc:
                logger.exception(
                    f"recurring_run: template={template_id} as_of={as_of} failed"
                )
                result.errors.append({"template_id": template_id, "error": str(exc)})
                continue
            if posted:
                result.processed_count += 1
                result.posted_ids.append(txn_id)
            else:
                result.skipped_count += 1

        self._evaluate_alerts(result.posted_ids)
        logger.info(
            f"recurring_run: as_of={as_of} processed={result.processed_count} "
            f"skipped={result.skipped_count} errors={len(result.errors)}"
        )
        return result

    def _check_window(self, as_of: date, today: date) -> None:
        backdate_days = get_settings().backdate_days
        if as_of > today:
            raise ValidationError("Recurring run date cannot be in the future")
        if as_of < today - timedelta(days=backdate_days):
            raise ValidationError(
                f"Recurring run date cannot be more than {backdate_days} days in the past"
            )

    def _post(self, template: RecurringTransaction, txn_id: str, as_of: date) -> bool:
        if self.session.get(Transaction, txn_id) is not None:
            return False

        txn = Transaction(
            id=txn_id,
            type=template.type,
            amount_cents=template.amount_cents,
            description=template.description,
            category=template.category,
            payment_method=template.payment_method,
            date=as_of,
            source=TransactionSource.recurring,
            is_recurring=True,
            recurring_transaction_id=template.id,
        )
        LedgerWriter(self.session, template.owner_id).stage_create(txn)
        if template.account_id:
            self._update_account(template)
        return True

    def _update_account(self, template: RecurringTransaction) -> None:
        account = self.session.get(Account, template.account_id)
        if account is None or account.owner_id != template.owner_id:
            raise NotFoundError(f"Account {template.account_id} not found")

        amount = template.amount_cents
        if account.account_type == AccountType.credit_card:
            if template.type == TransactionType.expense:
                used = Account.used_credit_cents + amount
            else:
                used = case(
                    (Account.used_credit_cents - amount < 0, 0),
                    else_=Account.used_credit_cents - amount,
                )
            values = {"used_credit_cents": used}
        else:
            sign = 1 if template.type == TransactionType.income else -1
            values = {
                "current_balance_cents": Account.current_balance_cents + sign * amount
            }
        values["updated_at"] = datetime.utcnow()
        self.session.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.expire(account)

    def _evaluate_alerts(self, posted_ids: list[str]) -> None:
        evaluator = BudgetAlertEvaluator(self.session)
        for txn_id in posted_ids:
            txn = self.session.get(Transaction, txn_id)
            if txn is None or txn.type != TransactionType.expense:
                continue
            try:
                evaluator.evaluate(txn)
            except LedgerError:
                logger.exception(f"budget_alert: transaction={txn_id} failed")
