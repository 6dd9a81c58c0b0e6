from balances import (
    BalanceDelta,
    BalanceSnapshot,
    LedgerEntry,
    apply_transaction_delta,
    combined_delta,
    transaction_delta,
)
from models import PaymentMethod, TransactionType


def _income(amount: int) -> LedgerEntry:
    return LedgerEntry(TransactionType.income, amount)


def _expense(amount: int, method: PaymentMethod) -> LedgerEntry:
    return LedgerEntry(TransactionType.expense, amount, method)


def test_transaction_delta_routes_by_type_and_payment_method() -> None:
    assert transaction_delta(_income(1_000)) == BalanceDelta(debit_cents=1_000)
    assert transaction_delta(_expense(1_000, PaymentMethod.credit)) == BalanceDelta(
        credit_cents=1_000
    )
    assert transaction_delta(_expense(1_000, PaymentMethod.debit)) == BalanceDelta(
        debit_cents=-1_000
    )
    assert transaction_delta(_expense(1_000, PaymentMethod.cash)) == BalanceDelta(
        debit_cents=-1_000
    )
    # Income ignores any payment method it happens to carry.
    assert transaction_delta(
        LedgerEntry(TransactionType.income, 500, PaymentMethod.credit)
    ) == BalanceDelta(debit_cents=500)


def test_create_then_delete_restores_aggregate() -> None:
    start = BalanceSnapshot(debit_balance_cents=100_000, used_credit_cents=20_000)
    for entry in (
        _income(7_500),
        _expense(3_000, PaymentMethod.debit),
        _expense(12_000, PaymentMethod.credit),
    ):
        created = apply_transaction_delta(None, entry, start)
        assert apply_transaction_delta(entry, None, created) == start


def test_edit_equals_reversal_then_reapply() -> None:
    start = BalanceSnapshot(
        debit_balance_cents=200_000, used_credit_cents=50_000, credit_limit_cents=300_000
    )
    pairs = [
        (_expense(20_000, PaymentMethod.debit), _expense(30_000, PaymentMethod.credit)),
        (_expense(30_000, PaymentMethod.credit), _expense(50_000, PaymentMethod.credit)),
        (_income(10_000), _expense(10_000, PaymentMethod.cash)),
        (_expense(5_000, PaymentMethod.credit), _income(8_000)),
    ]
    for previous, next_ in pairs:
        edited = apply_transaction_delta(previous, next_, start)
        stepwise = apply_transaction_delta(
            None, next_, apply_transaction_delta(previous, None, start)
        )
        assert edited == stepwise


def test_credit_expense_edit_is_not_double_counted() -> None:
    start = BalanceSnapshot(debit_balance_cents=100_000, used_credit_cents=0)
    before = _expense(30_000, PaymentMethod.credit)
    after = _expense(50_000, PaymentMethod.credit)

    created = apply_transaction_delta(None, before, start)
    assert created.used_credit_cents == 30_000

    edited = apply_transaction_delta(before, after, created)
    assert edited.used_credit_cents == 50_000
    assert edited.debit_balance_cents == 100_000
    assert combined_delta(before, after) == BalanceDelta(credit_cents=20_000)


def test_balances_clamp_at_zero() -> None:
    start = BalanceSnapshot(debit_balance_cents=1_000, used_credit_cents=500)
    result = apply_transaction_delta(None, _expense(5_000, PaymentMethod.debit), start)
    assert result.debit_balance_cents == 0

    reversed_credit = apply_transaction_delta(
        _expense(2_000, PaymentMethod.credit), None, start
    )
    assert reversed_credit.used_credit_cents == 0


def test_available_credit() -> None:
    snapshot = BalanceSnapshot(used_credit_cents=40_000, credit_limit_cents=100_000)
    assert snapshot.available_credit_cents == 60_000
    assert BalanceSnapshot(used_credit_cents=5, credit_limit_cents=0).available_credit_cents == 0
