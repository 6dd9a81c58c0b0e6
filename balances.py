"""Balance Update Engine.

Every ledger mutation is paired with exactly one compensating change to the
owner's :class:`~models.BalanceAggregate`. The delta for a transaction is
derived from its type and payment method alone:

* income            -> debit  += amount
* expense on Credit -> credit += amount
* any other expense -> debit  -= amount

Edits and deletes reverse the previous transaction's delta and apply the new
one as a single combined delta. The combined delta is applied with a
server-side increment (clamped at zero) so concurrent writers for the same
owner never overwrite each other's effect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from models import BalanceAggregate, PaymentMethod, Transaction, TransactionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """The fields of a transaction that drive the aggregate."""

    type: TransactionType
    amount_cents: int
    payment_method: Optional[PaymentMethod] = None

    @classmethod
    def of(cls, txn: Transaction) -> "LedgerEntry":
        return cls(
            type=txn.type,
            amount_cents=txn.amount_cents,
            payment_method=txn.payment_method,
        )


@dataclass(frozen=True)
class BalanceDelta:
    debit_cents: int = 0
    credit_cents: int = 0

    def __add__(self, other: "BalanceDelta") -> "BalanceDelta":
        return BalanceDelta(
            self.debit_cents + other.debit_cents,
            self.credit_cents + other.credit_cents,
        )

    def __neg__(self) -> "BalanceDelta":
        return BalanceDelta(-self.debit_cents, -self.credit_cents)

    def __sub__(self, other: "BalanceDelta") -> "BalanceDelta":
        return self + (-other)

    @property
    def is_zero(self) -> bool:
        return self.debit_cents == 0 and self.credit_cents == 0


@dataclass(frozen=True)
class BalanceSnapshot:
    debit_balance_cents: int = 0
    used_credit_cents: int = 0
    credit_limit_cents: int = 0

    @property
    def available_credit_cents(self) -> int:
        return max(0, self.credit_limit_cents - self.used_credit_cents)

    @classmethod
    def of(cls, aggregate: Optional[BalanceAggregate]) -> "BalanceSnapshot":
        if aggregate is None:
            return cls()
        return cls(
            debit_balance_cents=aggregate.debit_balance_cents,
            used_credit_cents=aggregate.used_credit_cents,
            credit_limit_cents=aggregate.credit_limit_cents,
        )


def transaction_delta(entry: Optional[LedgerEntry | Transaction]) -> BalanceDelta:
    if entry is None:
        return BalanceDelta()
    if entry.type == TransactionType.income:
        return BalanceDelta(debit_cents=entry.amount_cents)
    if entry.payment_method == PaymentMethod.credit:
        return BalanceDelta(credit_cents=entry.amount_cents)
    return BalanceDelta(debit_cents=-entry.amount_cents)


def combined_delta(
    previous: Optional[LedgerEntry | Transaction],
    next_: Optional[LedgerEntry | Transaction],
) -> BalanceDelta:
    return transaction_delta(next_) - transaction_delta(previous)


def apply_transaction_delta(
    previous: Optional[LedgerEntry | Transaction],
    next_: Optional[LedgerEntry | Transaction],
    aggregate: BalanceSnapshot,
) -> BalanceSnapshot:
    """Return the aggregate after replacing ``previous`` with ``next_``.

    Pass ``previous=None`` for a create and ``next_=None`` for a delete.
    Both balances are clamped at zero rather than rejected.
    """
    delta = combined_delta(previous, next_)
    return BalanceSnapshot(
        debit_balance_cents=max(0, aggregate.debit_balance_cents + delta.debit_cents),
        used_credit_cents=max(0, aggregate.used_credit_cents + delta.credit_cents),
        credit_limit_cents=aggregate.credit_limit_cents,
    )


def _clamped(column, delta_cents: int):
    return case((column + delta_cents < 0, 0), else_=column + delta_cents)


def ensure_aggregate(session: Session, owner_id: str) -> None:
    """Create the owner's aggregate with zero defaults if it is missing.

    Runs inside the caller's transaction, so a rollback also discards the row.
    """
    values = {
        "owner_id": owner_id,
        "debit_balance_cents": 0,
        "used_credit_cents": 0,
        "credit_limit_cents": 0,
        "opening_debit_cents": 0,
        "opening_used_credit_cents": 0,
        "version": 0,
        "last_updated": datetime.utcnow(),
    }
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite_insert(BalanceAggregate).values(**values)
        session.execute(stmt.on_conflict_do_nothing(index_elements=["owner_id"]))
        return
    if dialect == "postgresql":
        stmt = pg_insert(BalanceAggregate).values(**values)
        session.execute(stmt.on_conflict_do_nothing(index_elements=["owner_id"]))
        return
    if session.get(BalanceAggregate, owner_id) is None:
        session.execute(insert(BalanceAggregate).values(**values))


def increment_aggregate(session: Session, owner_id: str, delta: BalanceDelta) -> None:
    ensure_aggregate(session, owner_id)
    if delta.is_zero:
        return
    stmt = (
        update(BalanceAggregate)
        .where(BalanceAggregate.owner_id == owner_id)
        .values(
            debit_balance_cents=_clamped(
                BalanceAggregate.debit_balance_cents, delta.debit_cents
            ),
            used_credit_cents=_clamped(
                BalanceAggregate.used_credit_cents, delta.credit_cents
            ),
            version=BalanceAggregate.version + 1,
            last_updated=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    session.execute(stmt)
    logger.debug(
        f"aggregate_increment: owner={owner_id} debit={delta.debit_cents} "
        f"credit={delta.credit_cents}"
    )


class LedgerWriter:
    """Stages a ledger write and its aggregate delta in the same unit of work.

    Nothing is committed here; callers wrap the staging calls in
    :func:`database.atomic` so the ledger row and the aggregate change land
    together or not at all.
    """

    def __init__(self, session: Session, owner_id: str) -> None:
        self.session = session
        self.owner_id = owner_id

    def stage_create(self, txn: Transaction) -> BalanceDelta:
        txn.owner_id = self.owner_id
        self.session.add(txn)
        self.session.flush()
        return self._apply(None, txn)

    def stage_update(self, previous: LedgerEntry, txn: Transaction) -> BalanceDelta:
        self.session.flush()
        return self._apply(previous, txn)

    def stage_delete(self, txn: Transaction) -> BalanceDelta:
        previous = LedgerEntry.of(txn)
        self.session.delete(txn)
        self.session.flush()
        return self._apply(previous, None)

    def _apply(
        self,
        previous: Optional[LedgerEntry | Transaction],
        next_: Optional[LedgerEntry | Transaction],
    ) -> BalanceDelta:
        delta = combined_delta(previous, next_)
        increment_aggregate(self.session, self.owner_id, delta)
        return delta
