import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from sqlalchemy.orm import Session

from alerts import purge_old_notifications
from auth import verify_job_token, verify_owner_token
from config import get_settings
from database import SessionLocal
from errors import (
    AuthorizationError,
    ConflictError,
    LedgerError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from models import TransactionType
from periods import Period, resolve_period
from recurrence import RecurringProcessor
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    AccountOut,
    AmountIn,
    BalanceOut,
    BalanceSetupIn,
    BudgetIn,
    BudgetOut,
    LoanIn,
    LoanOut,
    LoanPaymentOut,
    NotificationOut,
    ProfileIn,
    RecurringRunOut,
    RecurringTransactionIn,
    RecurringTransactionOut,
    ResetOut,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalUpdateIn,
    SummaryOut,
    TransactionCreatedOut,
    TransactionIn,
    TransactionOut,
)
from services import (
    AccountService,
    BalanceService,
    BudgetService,
    LoanService,
    NotificationService,
    ProfileService,
    RecurringTransactionService,
    ResetService,
    SavingsGoalService,
    TransactionService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_owner(x_owner_token: Optional[str] = Header(default=None)) -> str:
    try:
        return verify_owner_token(x_owner_token)
    except AuthorizationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def job_caller(x_job_token: Optional[str] = Header(default=None)) -> None:
    try:
        verify_job_token(x_job_token)
    except AuthorizationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=503, detail="Please try again later")
    logger.error(f"unmapped_error: {exc.__class__.__name__}: {exc}")
    return HTTPException(status_code=500, detail="Unexpected error")


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def balance_out(service: BalanceService) -> BalanceOut:
    snapshot = service.snapshot()
    return BalanceOut(
        debit_balance_cents=snapshot.debit_balance_cents,
        used_credit_cents=snapshot.used_credit_cents,
        credit_limit_cents=snapshot.credit_limit_cents,
        available_credit_cents=snapshot.available_credit_cents,
    )


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    request: Request,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    period = period_from_request(request)
    type_param = request.query_params.get("type")
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError as exc:
            raise HTTPException(
                status_code=400, detail=f"Unknown transaction type: {type_param}"
            ) from exc
    category = request.query_params.get("category") or None
    return TransactionService(db, owner_id).list(
        period,
        txn_type=txn_type,
        category=category,
        limit=max(1, min(limit, 500)),
        offset=max(offset, 0),
    )


@app.post("/api/transactions", response_model=TransactionCreatedOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        txn = TransactionService(db, owner_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return TransactionCreatedOut(id=txn.id)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return TransactionService(db, owner_id).get(transaction_id)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    data: TransactionIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return TransactionService(db, owner_id).update(transaction_id, data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        TransactionService(db, owner_id).delete(transaction_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/summary", response_model=SummaryOut)
def transaction_summary(
    request: Request,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    period = period_from_request(request)
    summary = TransactionService(db, owner_id).summary(period)
    return SummaryOut(
        start=summary.period.start,
        end=summary.period.end,
        income_cents=summary.income_cents,
        expense_cents=summary.expense_cents,
        net_cents=summary.net_cents,
        by_category=summary.by_category,
    )


@app.get("/api/balances", response_model=BalanceOut)
def get_balances(
    db: Session = Depends(get_db), owner_id: str = Depends(current_owner)
):
    return balance_out(BalanceService(db, owner_id))


@app.put("/api/balances", response_model=BalanceOut)
def setup_balances(
    data: BalanceSetupIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    service = BalanceService(db, owner_id)
    try:
        service.setup(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return balance_out(service)


@app.post("/api/balances/rebuild", response_model=BalanceOut)
def rebuild_balances(
    db: Session = Depends(get_db), owner_id: str = Depends(current_owner)
):
    service = BalanceService(db, owner_id)
    try:
        service.rebuild_from_ledger()
    except LedgerError as exc:
        raise http_error(exc) from exc
    return balance_out(service)


@app.get("/api/goals", response_model=list[SavingsGoalOut])
def list_goals(db: Session = Depends(get_db), owner_id: str = Depends(current_owner)):
    return SavingsGoalService(db, owner_id).list()


@app.post("/api/goals", response_model=SavingsGoalOut, status_code=201)
def create_goal(
    data: SavingsGoalIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return SavingsGoalService(db, owner_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.put("/api/goals/{goal_id}", response_model=SavingsGoalOut)
def update_goal(
    goal_id: str,
    data: SavingsGoalUpdateIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return SavingsGoalService(db, owner_id).update(goal_id, data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.post("/api/goals/{goal_id}/contribute", response_model=SavingsGoalOut)
def contribute_to_goal(
    goal_id: str,
    data: AmountIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return SavingsGoalService(db, owner_id).contribute(goal_id, data.amount_cents).goal
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.post("/api/goals/{goal_id}/withdraw", response_model=SavingsGoalOut)
def withdraw_from_goal(
    goal_id: str,
    data: AmountIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return SavingsGoalService(db, owner_id).withdraw(goal_id, data.amount_cents).goal
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.delete("/api/goals/{goal_id}", status_code=204)
def delete_goal(
    goal_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        SavingsGoalService(db, owner_id).delete(goal_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/loans", response_model=list[LoanOut])
def list_loans(db: Session = Depends(get_db), owner_id: str = Depends(current_owner)):
    return LoanService(db, owner_id).list()


@app.post("/api/loans", response_model=LoanOut, status_code=201)
def create_loan(
    data: LoanIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return LoanService(db, owner_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.post("/api/loans/{loan_id}/payments", response_model=LoanPaymentOut)
def pay_loan(
    loan_id: str,
    data: AmountIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        result = LoanService(db, owner_id).pay(loan_id, data.amount_cents)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return LoanPaymentOut(
        remaining_amount_cents=result.remaining_amount_cents, status=result.status
    )


@app.delete("/api/loans/{loan_id}", status_code=204)
def delete_loan(
    loan_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        LoanService(db, owner_id).delete(loan_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    return BudgetService(db, owner_id).list(month)


@app.put("/api/budgets", response_model=BudgetOut)
def upsert_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return BudgetService(db, owner_id).upsert(data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        BudgetService(db, owner_id).delete(budget_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/recurring", response_model=list[RecurringTransactionOut])
def list_recurring(
    db: Session = Depends(get_db), owner_id: str = Depends(current_owner)
):
    return RecurringTransactionService(db, owner_id).list()


@app.post("/api/recurring", response_model=RecurringTransactionOut, status_code=201)
def create_recurring(
    data: RecurringTransactionIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return RecurringTransactionService(db, owner_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.delete("/api/recurring/{template_id}", status_code=204)
def delete_recurring(
    template_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        RecurringTransactionService(db, owner_id).delete(template_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/accounts", response_model=list[AccountOut])
def list_accounts(
    db: Session = Depends(get_db), owner_id: str = Depends(current_owner)
):
    return AccountService(db, owner_id).list()


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(
    data: AccountIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        return AccountService(db, owner_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/notifications", response_model=list[NotificationOut])
def list_notifications(
    unread: bool = False,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    return NotificationService(db, owner_id).list(unread_only=unread)


@app.post("/api/notifications/{notification_id}/read", status_code=204)
def read_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        NotificationService(db, owner_id).mark_read(notification_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.put("/api/profile")
def update_profile(
    data: ProfileIn,
    db: Session = Depends(get_db),
    owner_id: str = Depends(current_owner),
):
    try:
        profile = ProfileService(db, owner_id).upsert(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return {"owner_id": profile.owner_id, "display_name": profile.display_name}


@app.post("/api/reset", response_model=ResetOut)
def reset_user_data(
    db: Session = Depends(get_db), owner_id: str = Depends(current_owner)
):
    try:
        result = ResetService(db).reset_all_user_data(owner_id, owner_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return ResetOut(deleted_count=result.deleted_count)


@app.post(
    "/jobs/recurring",
    response_model=RecurringRunOut,
    dependencies=[Depends(job_caller)],
)
def run_recurring(as_of: Optional[date] = None, db: Session = Depends(get_db)):
    try:
        result = RecurringProcessor(db).run(as_of)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return RecurringRunOut(
        processed_count=result.processed_count,
        skipped_count=result.skipped_count,
        errors=result.errors,
    )


@app.post("/jobs/notifications/cleanup", dependencies=[Depends(job_caller)])
def cleanup_notifications(db: Session = Depends(get_db)):
    try:
        deleted = purge_old_notifications(db)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return {"deleted_count": deleted}
