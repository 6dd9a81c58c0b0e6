from datetime import timedelta

import pytest
from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from models import BalanceAggregate, Budget, PaymentMethod, Transaction, TransactionType
from periods import local_today, month_period
from schemas import BalanceSetupIn, TransactionIn
from services import BalanceService, CategoryResolver, TransactionService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _txn(**overrides) -> TransactionIn:
    values = {
        "type": TransactionType.expense,
        "amount_cents": 30_000,
        "description": "Groceries",
        "category": "Comida",
        "payment_method": PaymentMethod.credit,
        "date": local_today(),
    }
    values.update(overrides)
    return TransactionIn(**values)


def test_income_on_empty_aggregate() -> None:
    session = make_session()
    TransactionService(session, "alice").create(
        _txn(type=TransactionType.income, amount_cents=100_000, category="Salario",
             payment_method=None, description="Salary")
    )

    snapshot = BalanceService(session, "alice").snapshot()
    assert snapshot.debit_balance_cents == 100_000
    assert snapshot.used_credit_cents == 0


def test_credit_expense_create_edit_delete() -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    balances = BalanceService(session, "alice")
    balances.setup(BalanceSetupIn(debit_balance_cents=100_000, credit_limit_cents=500_000))

    txn = service.create(_txn(amount_cents=30_000))
    snapshot = balances.snapshot()
    assert snapshot.debit_balance_cents == 100_000
    assert snapshot.used_credit_cents == 30_000

    service.update(txn.id, _txn(amount_cents=50_000))
    assert balances.snapshot().used_credit_cents == 50_000

    service.delete(txn.id)
    snapshot = balances.snapshot()
    assert snapshot.used_credit_cents == 0
    assert snapshot.debit_balance_cents == 100_000
    assert session.get(Transaction, txn.id) is None


def test_edit_moves_amount_between_debit_and_credit() -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    balances = BalanceService(session, "alice")
    balances.setup(BalanceSetupIn(debit_balance_cents=100_000, credit_limit_cents=500_000))

    txn = service.create(_txn(amount_cents=20_000, payment_method=PaymentMethod.debit))
    assert balances.snapshot().debit_balance_cents == 80_000

    service.update(txn.id, _txn(amount_cents=30_000, payment_method=PaymentMethod.credit))
    snapshot = balances.snapshot()
    assert snapshot.debit_balance_cents == 100_000
    assert snapshot.used_credit_cents == 30_000


def test_validation_rejects_bad_input_without_writing() -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    today = local_today()
    cases = [
        (_txn(amount_cents=0), "greater than 0"),
        (_txn(amount_cents=100_000_001), "too large"),
        (_txn(description="ab"), "at least 3"),
        (_txn(category="  "), "Category is required"),
        (_txn(payment_method=None), "Payment method"),
        (_txn(date=today + timedelta(days=1)), "future"),
        (_txn(date=today - timedelta(days=400)), "one year"),
    ]
    for data, message in cases:
        with pytest.raises(ValidationError, match=message):
            service.create(data)

    assert session.scalars(select(Transaction)).all() == []
    assert BalanceService(session, "alice").snapshot().debit_balance_cents == 0


def test_other_owner_cannot_see_or_change_transaction() -> None:
    session = make_session()
    txn = TransactionService(session, "alice").create(_txn())

    intruder = TransactionService(session, "mallory")
    with pytest.raises(NotFoundError):
        intruder.get(txn.id)
    with pytest.raises(NotFoundError):
        intruder.delete(txn.id)
    assert BalanceService(session, "alice").snapshot().used_credit_cents == 30_000


def test_service_requires_owner() -> None:
    session = make_session()
    with pytest.raises(AuthorizationError):
        TransactionService(session, "")


def test_failed_commit_leaves_ledger_and_aggregate_untouched(monkeypatch) -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    balances = BalanceService(session, "alice")
    balances.setup(BalanceSetupIn(debit_balance_cents=50_000, credit_limit_cents=0))
    existing = service.create(_txn(amount_cents=10_000, payment_method=PaymentMethod.debit))

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(StoreUnavailableError):
        service.create(_txn(amount_cents=5_000, payment_method=PaymentMethod.debit))
    with pytest.raises(StoreUnavailableError):
        service.update(
            existing.id, _txn(amount_cents=25_000, payment_method=PaymentMethod.debit)
        )

    monkeypatch.undo()
    ids = session.scalars(select(Transaction.id)).all()
    assert ids == [existing.id]
    assert session.get(Transaction, existing.id).amount_cents == 10_000
    assert balances.snapshot().debit_balance_cents == 40_000


def test_list_filters_by_type_and_category() -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    service.create(_txn(description="Lunch"))
    service.create(_txn(category="Transporte", description="Bus pass"))
    service.create(
        _txn(type=TransactionType.income, category="Salario", payment_method=None,
             description="Salary")
    )
    TransactionService(session, "bob").create(_txn())

    period = month_period(local_today())
    assert len(service.list(period)) == 3
    expenses = service.list(period, txn_type=TransactionType.expense)
    assert {t.category for t in expenses} == {"Comida", "Transporte"}
    food = service.list(period, category="Comida")
    assert [t.description for t in food] == ["Lunch"]


def test_category_labels_snap_to_known_ones() -> None:
    session = make_session()
    service = TransactionService(session, "alice")

    assert service.create(_txn(category="comida")).category == "Comida"
    assert service.create(_txn(category="Comidas")).category == "Comida"
    assert service.create(_txn(category="Mascotas")).category == "Mascotas"
    assert service.create(_txn(category="mascota")).category == "Mascotas"


def test_ambiguous_category_is_rejected() -> None:
    session = make_session()
    month = local_today().strftime("%Y-%m")
    session.add_all(
        [
            Budget(owner_id="alice", month=month, category="Libro", limit_cents=100),
            Budget(owner_id="alice", month=month, category="Litro", limit_cents=100),
        ]
    )
    session.commit()

    resolver = CategoryResolver(session, "alice")
    with pytest.raises(ValidationError, match="ambiguous"):
        resolver.resolve("Lirro", TransactionType.expense)


def test_rebuild_from_ledger_repairs_a_drifted_aggregate() -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    service.create(
        _txn(type=TransactionType.income, amount_cents=50_000, category="Salario",
             payment_method=None, description="Salary")
    )
    balances = BalanceService(session, "alice")
    balances.setup(BalanceSetupIn(debit_balance_cents=100_000, credit_limit_cents=200_000))
    service.create(_txn(amount_cents=20_000, payment_method=PaymentMethod.debit))
    service.create(_txn(amount_cents=15_000, payment_method=PaymentMethod.credit))

    session.execute(
        update(BalanceAggregate)
        .where(BalanceAggregate.owner_id == "alice")
        .values(debit_balance_cents=7, used_credit_cents=0)
    )
    session.commit()

    snapshot = balances.rebuild_from_ledger()
    assert snapshot.debit_balance_cents == 80_000
    assert snapshot.used_credit_cents == 15_000
    assert snapshot.credit_limit_cents == 200_000


def _two_sessions(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal(), SessionLocal()


def test_concurrent_delete_reverses_balance_once(tmp_path) -> None:
    first, second = _two_sessions(tmp_path)
    BalanceService(first, "alice").setup(
        BalanceSetupIn(debit_balance_cents=100_000, credit_limit_cents=0)
    )
    txn = TransactionService(first, "alice").create(
        _txn(amount_cents=10_000, payment_method=PaymentMethod.debit)
    )
    # Both sessions hold the row before either deletes it.
    TransactionService(first, "alice").get(txn.id)
    TransactionService(second, "alice").get(txn.id)

    TransactionService(second, "alice").delete(txn.id)
    with pytest.raises(ConflictError):
        TransactionService(first, "alice").delete(txn.id)

    assert BalanceService(second, "alice").snapshot().debit_balance_cents == 100_000
    first.close()
    second.close()


def test_concurrent_edit_of_same_transaction_is_a_conflict(tmp_path) -> None:
    first, second = _two_sessions(tmp_path)
    BalanceService(first, "alice").setup(
        BalanceSetupIn(debit_balance_cents=100_000, credit_limit_cents=0)
    )
    txn = TransactionService(first, "alice").create(
        _txn(amount_cents=10_000, payment_method=PaymentMethod.debit)
    )
    stale = TransactionService(first, "alice").get(txn.id)
    assert stale.version == 1
    TransactionService(second, "alice").get(txn.id)

    TransactionService(second, "alice").update(
        txn.id, _txn(amount_cents=20_000, payment_method=PaymentMethod.debit)
    )
    with pytest.raises(ConflictError):
        TransactionService(first, "alice").update(
            txn.id, _txn(amount_cents=40_000, payment_method=PaymentMethod.debit)
        )

    second.expire_all()
    assert second.get(Transaction, txn.id).amount_cents == 20_000
    assert BalanceService(second, "alice").snapshot().debit_balance_cents == 80_000
    first.close()
    second.close()


def test_summary_totals_income_expense_and_categories() -> None:
    session = make_session()
    service = TransactionService(session, "alice")
    today = local_today()
    service.create(
        _txn(type=TransactionType.income, amount_cents=500_000, category="Salario",
             payment_method=None, description="Salary")
    )
    service.create(_txn(amount_cents=30_000, description="Lunch"))
    service.create(_txn(amount_cents=20_000, description="Dinner"))
    service.create(_txn(amount_cents=80_000, category="Transporte", description="Bus pass"))
    TransactionService(session, "bob").create(_txn(amount_cents=99_000))

    summary = service.summary(month_period(today))

    assert summary.income_cents == 500_000
    assert summary.expense_cents == 130_000
    assert summary.net_cents == 370_000
    assert summary.by_category == [
        {"category": "Transporte", "total_cents": 80_000},
        {"category": "Comida", "total_cents": 50_000},
    ]


def test_summary_of_empty_period_is_zero() -> None:
    session = make_session()
    summary = TransactionService(session, "alice").summary(month_period(local_today()))
    assert summary.income_cents == 0
    assert summary.expense_cents == 0
    assert summary.by_category == []
