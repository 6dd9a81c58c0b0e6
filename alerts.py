from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from config import get_settings
from database import atomic
from models import (
    Budget,
    Loan,
    LoanStatus,
    Notification,
    NotificationType,
    Transaction,
    TransactionType,
)
from periods import local_today, month_key, month_period

logger = logging.getLogger(__name__)

# Non-overlapping bands: [90, 100), [100, 110), [110, inf).
BUDGET_THRESHOLDS = (110, 100, 90)

_ALERT_TITLES = {
    90: "Budget at 90%",
    100: "Budget used up",
    110: "Budget exceeded",
}


def threshold_band(spent_cents: int, limit_cents: int) -> Optional[int]:
    """Highest threshold reached by ``spent_cents`` against ``limit_cents``."""
    if limit_cents <= 0:
        return None
    for threshold in BUDGET_THRESHOLDS:
        if spent_cents * 100 >= threshold * limit_cents:
            return threshold
    return None


def _format_amount(cents: int) -> str:
    return f"{cents:,}".replace(",", ".")


class BudgetAlertEvaluator:
    def __init__(self, session: Session) -> None:
        self.session = session

    def spent_in_month(self, owner_id: str, category: str, on: date) -> int:
        period = month_period(on)
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                    Transaction.owner_id == owner_id,
                    Transaction.type == TransactionType.expense,
                    Transaction.category == category,
                    Transaction.date.between(period.start, period.end),
                )
            ).scalar_one()
            or 0
        )

    def evaluate(self, txn: Transaction) -> Optional[Notification]:
        """Emit at most one alert for the band this expense pushed its category into."""
        if txn.type != TransactionType.expense:
            return None
        owner_id = txn.owner_id
        category = txn.category
        month = month_key(txn.date)

        budget = self.session.scalar(
            select(Budget).where(
                Budget.owner_id == owner_id,
                Budget.month == month,
                Budget.category == category,
            )
        )
        if budget is None:
            logger.debug(
                f"budget_alert: owner={owner_id} category={category} month={month} no_budget"
            )
            return None

        spent = self.spent_in_month(owner_id, category, txn.date)
        band = threshold_band(spent, budget.limit_cents)
        logger.info(
            f"budget_alert: owner={owner_id} category={category} month={month} "
            f"spent={spent} limit={budget.limit_cents} band={band}"
        )
        if band is None:
            return None

        existing = self.session.scalar(
            select(Notification.id)
            .where(
                Notification.owner_id == owner_id,
                Notification.type == NotificationType.budget_alert,
                Notification.category == category,
                Notification.month == month,
                Notification.threshold == band,
                Notification.is_read.is_(False),
            )
            .limit(1)
        )
        if existing:
            return None

        notification = Notification(
            owner_id=owner_id,
            type=NotificationType.budget_alert,
            title=_ALERT_TITLES[band],
            message=(
                f"You have spent {_format_amount(spent)} of "
                f"{_format_amount(budget.limit_cents)} budgeted for '{category}' "
                f"in {month}."
            ),
            category=category,
            month=month,
            threshold=band,
            amount_spent_cents=spent,
            budget_limit_cents=budget.limit_cents,
        )
        with atomic(self.session):
            self.session.add(notification)
        return notification


class LoanReminderProcessor:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()

    def run(self, as_of: Optional[date] = None) -> int:
        as_of = as_of or local_today()
        due_on = as_of + timedelta(days=self.settings.loan_reminder_days)
        loans = self.session.scalars(
            select(Loan).where(
                Loan.status == LoanStatus.active,
                Loan.next_payment_date == due_on,
            )
        ).all()

        created = 0
        with atomic(self.session):
            for loan in loans:
                pending = self.session.scalar(
                    select(Notification.id)
                    .where(
                        Notification.owner_id == loan.owner_id,
                        Notification.type == NotificationType.loan_reminder,
                        Notification.loan_id == loan.id,
                        Notification.is_read.is_(False),
                    )
                    .limit(1)
                )
                if pending:
                    continue
                self.session.add(
                    Notification(
                        owner_id=loan.owner_id,
                        type=NotificationType.loan_reminder,
                        title="Payment reminder",
                        message=(
                            f"Your loan '{loan.loan_name}' is due on "
                            f"{due_on.isoformat()}. Amount: "
                            f"{_format_amount(loan.monthly_payment_cents)}"
                        ),
                        loan_id=loan.id,
                    )
                )
                created += 1
        logger.info(f"loan_reminders: as_of={as_of} due_on={due_on} created={created}")
        return created


def purge_old_notifications(
    session: Session,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Delete notifications older than the retention window, read or not."""
    if retention_days is None:
        retention_days = get_settings().notification_retention_days
    cutoff = (now or datetime.utcnow()) - timedelta(days=retention_days)
    with atomic(session):
        result = session.execute(
            delete(Notification)
            .where(Notification.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
    deleted = result.rowcount or 0
    logger.info(f"notification_cleanup: cutoff={cutoff.isoformat()} deleted={deleted}")
    return deleted
