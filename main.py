import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from sqlalchemy.orm import Session

from auth import owner_from_authorization
from database import get_session_factory
from periods import resolve_window
from scheduler import SchedulerManager
from schemas import (
    CategoryOut,
    ExpenseIn,
    ExpenseOut,
    ExpenseUpdateIn,
    PaymentOutcomeOut,
    ReimbursementIn,
    ReimbursementOut,
    RetractionOut,
    RollupOut,
)
from services import (
    CategoryService,
    ExpenseService,
    LedgerError,
    NotFound,
    OverdraftRejected,
    ReimbursementService,
    StoreUnavailable,
    rebuild_expense_summaries,
)

app = FastAPI(title="Expense Reimbursement Tracker")


def get_db():
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_current_owner(authorization: Optional[str] = Header(default=None)) -> str:
    owner_id = owner_from_authorization(authorization)
    if owner_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token.")
    return owner_id


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, OverdraftRejected):
        return HTTPException(status_code=400, detail=exc.as_dict())
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StoreUnavailable):
        logging.error(f"store_unavailable: {exc}")
        return HTTPException(status_code=503, detail="Store unavailable")
    return HTTPException(status_code=400, detail=str(exc))


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/api/categories", response_model=list[CategoryOut])
def api_categories(
    owner_id: str = Depends(get_current_owner), db: Session = Depends(get_db)
):
    try:
        return CategoryService(db).list_all()
    except StoreUnavailable as exc:
        raise http_error(exc) from exc


@app.get("/api/expenses", response_model=list[ExpenseOut])
def api_list_expenses(
    include_archived: bool = False,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).list(include_archived=include_archived)
    except StoreUnavailable as exc:
        raise http_error(exc) from exc


@app.post("/api/expenses", status_code=201, response_model=ExpenseOut)
def api_create_expense(
    payload: ExpenseIn,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).create(payload)
    except (LedgerError, StoreUnavailable) as exc:
        raise http_error(exc) from exc


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def api_get_expense(
    expense_id: int,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).get(expense_id)
    except (LedgerError, StoreUnavailable) as exc:
        raise http_error(exc) from exc


@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def api_update_expense(
    expense_id: int,
    payload: ExpenseUpdateIn,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, owner_id).update(expense_id, payload)
    except (LedgerError, StoreUnavailable) as exc:
        raise http_error(exc) from exc


@app.delete("/api/expenses/{expense_id}")
def api_archive_expense(
    expense_id: int,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        ExpenseService(db, owner_id).archive(expense_id)
    except (LedgerError, StoreUnavailable) as exc:
        raise http_error(exc) from exc
    return {"message": "Expense archived successfully."}


@app.post(
    "/api/reimbursements", status_code=201, response_model=PaymentOutcomeOut
)
def api_record_reimbursement(
    payload: ReimbursementIn,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    service = ReimbursementService(db, owner_id)
    try:
        outcome = service.record_payment(
            payload.expense_id,
            payload.amount_cents,
            method=payload.method,
            notes=payload.notes,
            reimbursed_at=payload.reimbursed_at,
        )
    except (LedgerError, StoreUnavailable) as exc:
        raise http_error(exc) from exc
    return PaymentOutcomeOut.model_validate(outcome)


@app.get("/api/reimbursements/summary/overall", response_model=RollupOut)
def api_reimbursement_summary(
    start: Optional[str] = Query(default=None, alias="from"),
    end: Optional[str] = Query(default=None, alias="to"),
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        window = resolve_window(start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        summary = ReimbursementService(db, owner_id).overall_summary(window)
    except StoreUnavailable as exc:
        raise http_error(exc) from exc
    return RollupOut.model_validate(summary)


@app.post("/api/reimbursements/summary/rebuild")
def api_rebuild_summaries(
    owner_id: str = Depends(get_current_owner), db: Session = Depends(get_db)
):
    try:
        count = rebuild_expense_summaries(db, owner_id)
    except StoreUnavailable as exc:
        raise http_error(exc) from exc
    return {"rebuilt": count}


@app.get("/api/reimbursements/{expense_id}", response_model=list[ReimbursementOut])
def api_list_reimbursements(
    expense_id: int,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        return ReimbursementService(db, owner_id).list_payments(expense_id)
    except StoreUnavailable as exc:
        raise http_error(exc) from exc


@app.delete("/api/reimbursements/{payment_id}", response_model=RetractionOut)
def api_retract_reimbursement(
    payment_id: int,
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    try:
        outcome = ReimbursementService(db, owner_id).retract_payment(payment_id)
    except (LedgerError, StoreUnavailable) as exc:
        raise http_error(exc) from exc
    if outcome.summary_stale:
        logging.warning(f"reimbursement_retracted_with_stale_summary: id={payment_id}")
    return RetractionOut.model_validate(outcome)
