import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from database import SessionLocal, init_db
from forecast import CalendarDay, MonthlyProjection
from models import ProjectionMethod, TransactionStatus, TransactionType
from periods import add_months, local_today, parse_month
from recurrence import Occurrence
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdateIn,
    CategoryIn,
    CategoryOut,
    CompleteOccurrenceIn,
    QuickTransactionIn,
    ScheduleIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdateIn,
)
from services import AccountService, CategoryService, ReportService, TransactionService

logger = logging.getLogger(__name__)

app = FastAPI(title="Radar Finance")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _raise_http(exc: ValueError) -> None:
    message = str(exc)
    status = 404 if message.lower().endswith("not found") else 400
    raise HTTPException(status_code=status, detail=message) from exc


def occurrence_payload(occurrence: Occurrence, today: Optional[date] = None) -> dict:
    txn = occurrence.transaction
    payload = {
        "transaction_id": txn.id,
        "title": txn.title,
        "type": txn.type.value,
        "due_date": occurrence.due_date,
        "amount": occurrence.amount,
        "is_completed": occurrence.is_completed,
        "is_estimated": txn.is_estimated,
        "frequency": txn.schedule.frequency.label if txn.schedule else None,
    }
    if today is not None:
        payload["days_until_due"] = (occurrence.due_date - today).days
        payload["is_past_due"] = occurrence.due_date < today
    return payload


def projection_payload(projection: MonthlyProjection) -> dict:
    return {
        "month": projection.month.strftime("%Y-%m"),
        "scheduled_income": projection.scheduled_income,
        "scheduled_expenses": projection.scheduled_expenses,
        "net": projection.net,
        "projected_balance": projection.projected_balance,
    }


def calendar_payload(day: CalendarDay) -> dict:
    return {
        "date": day.date,
        "has_income": day.has_income,
        "has_expense": day.has_expense,
        "total_income": day.total_income,
        "total_expenses": day.total_expenses,
        "occurrences": [occurrence_payload(o) for o in day.occurrences],
    }


# Accounts


@app.get("/api/accounts", response_model=list[AccountOut])
def list_accounts(db: Session = Depends(get_db)):
    return AccountService(db).list_all()


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(payload: AccountIn, db: Session = Depends(get_db)):
    return AccountService(db).create(payload)


@app.get("/api/accounts/{account_id}", response_model=AccountOut)
def get_account(account_id: int, db: Session = Depends(get_db)):
    try:
        return AccountService(db).get(account_id)
    except ValueError as exc:
        _raise_http(exc)


@app.put("/api/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int, payload: AccountUpdateIn, db: Session = Depends(get_db)
):
    try:
        return AccountService(db).update(account_id, payload)
    except ValueError as exc:
        _raise_http(exc)


@app.post("/api/accounts/{account_id}/default", response_model=AccountOut)
def make_default_account(account_id: int, db: Session = Depends(get_db)):
    try:
        return AccountService(db).set_default(account_id)
    except ValueError as exc:
        _raise_http(exc)


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        _raise_http(exc)


# Categories


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    type: Optional[TransactionType] = None, db: Session = Depends(get_db)
):
    return CategoryService(db).list_all(type)


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).create(payload)
    except ValueError as exc:
        _raise_http(exc)


@app.post("/api/categories/seed")
def seed_categories(db: Session = Depends(get_db)):
    created = CategoryService(db).create_system_categories()
    return {"created": created}


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        _raise_http(exc)


# Transactions


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    account_id: Optional[int] = None,
    status: Optional[TransactionStatus] = None,
    db: Session = Depends(get_db),
):
    return TransactionService(db).list(account_id, status)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).create(payload)
    except ValueError as exc:
        _raise_http(exc)


@app.post("/api/transactions/quick", response_model=TransactionOut, status_code=201)
def quick_transaction(payload: QuickTransactionIn, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).quick_entry(payload)
    except ValueError as exc:
        _raise_http(exc)


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).get(transaction_id)
    except ValueError as exc:
        _raise_http(exc)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, payload: TransactionUpdateIn, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).update(transaction_id, payload)
    except ValueError as exc:
        _raise_http(exc)


@app.put("/api/transactions/{transaction_id}/schedule", response_model=TransactionOut)
def update_transaction_schedule(
    transaction_id: int, payload: ScheduleIn, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).update_schedule(transaction_id, payload)
    except ValueError as exc:
        _raise_http(exc)


@app.post(
    "/api/transactions/{transaction_id}/complete",
    response_model=TransactionOut,
    status_code=201,
)
def complete_transaction(
    transaction_id: int, payload: CompleteOccurrenceIn, db: Session = Depends(get_db)
):
    try:
        return TransactionService(db).complete_occurrence(transaction_id, payload)
    except ValueError as exc:
        _raise_http(exc)


@app.post("/api/transactions/{transaction_id}/cancel", response_model=TransactionOut)
def cancel_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        return TransactionService(db).cancel(transaction_id)
    except ValueError as exc:
        _raise_http(exc)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        _raise_http(exc)


@app.get("/api/transactions/{transaction_id}/occurrences")
def transaction_occurrences(
    transaction_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    today = local_today()
    start = start or today
    end = end or add_months(today, 12)
    try:
        occurrences = TransactionService(db).occurrences(transaction_id, start, end)
    except ValueError as exc:
        _raise_http(exc)
    return [occurrence_payload(o, today) for o in occurrences]


@app.get("/api/transactions/{transaction_id}/next")
def transaction_next_due(
    transaction_id: int, after: Optional[date] = None, db: Session = Depends(get_db)
):
    try:
        next_due = TransactionService(db).next_due(transaction_id, after)
    except ValueError as exc:
        _raise_http(exc)
    return {"transaction_id": transaction_id, "next_due": next_due}


# Reports


@app.get("/api/dashboard")
def dashboard(account_id: Optional[int] = None, db: Session = Depends(get_db)):
    today = local_today()
    try:
        data = ReportService(db).dashboard(account_id, today)
    except ValueError as exc:
        _raise_http(exc)
    return {
        "total_balance": data["total_balance"],
        "upcoming_totals": data["upcoming_totals"],
        "upcoming": [occurrence_payload(o, today) for o in data["upcoming"]],
    }


@app.get("/api/upcoming")
def upcoming(account_id: Optional[int] = None, db: Session = Depends(get_db)):
    today = local_today()
    occurrences = ReportService(db).upcoming(account_id, today)
    return [occurrence_payload(o, today) for o in occurrences]


@app.get("/api/projections")
def projections(
    account_id: Optional[int] = None,
    method: Optional[ProjectionMethod] = None,
    db: Session = Depends(get_db),
):
    try:
        rows = ReportService(db).projections(account_id, method=method)
    except ValueError as exc:
        _raise_http(exc)
    return [projection_payload(p) for p in rows]


@app.get("/api/calendar")
def calendar(
    account_id: Optional[int] = None,
    month: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        displayed = parse_month(month)
    except ValueError as exc:
        _raise_http(exc)
    days = ReportService(db).calendar(account_id, displayed)
    return {
        "month": displayed.strftime("%Y-%m"),
        "days": [calendar_payload(d) for d in days if d.has_transactions],
    }


@app.get("/api/ledger")
def ledger(account_id: Optional[int] = None, db: Session = Depends(get_db)):
    try:
        groups = ReportService(db).ledger(account_id)
    except ValueError as exc:
        _raise_http(exc)
    return [
        {
            "month": group["month"].strftime("%Y-%m"),
            "entries": [
                {
                    **TransactionOut.model_validate(entry["transaction"]).model_dump(),
                    "balance": entry["balance"],
                }
                for entry in group["entries"]
            ],
        }
        for group in groups
    ]


@app.get("/api/cash-flow")
def cash_flow(account_id: Optional[int] = None, db: Session = Depends(get_db)):
    return [
        {
            "month": flow.month.strftime("%Y-%m"),
            "income": flow.income,
            "expenses": flow.expenses,
            "net": flow.net,
        }
        for flow in ReportService(db).cash_flow(account_id)
    ]


@app.get("/api/spending")
def spending(account_id: Optional[int] = None, db: Session = Depends(get_db)):
    return [
        {
            "month": month.month.strftime("%Y-%m"),
            "total_spent": month.total_spent,
            "categories": [
                {
                    "name": c.category_name,
                    "color": c.category_color,
                    "amount": c.amount,
                    "percentage": c.percentage,
                }
                for c in month.categories
            ],
        }
        for month in ReportService(db).spending(account_id)
    ]


@app.post("/api/admin/reconcile-balances")
def reconcile_balances(db: Session = Depends(get_db)):
    corrected = AccountService(db).reconcile_all()
    logger.info(f"admin_reconcile: accounts_corrected={corrected}")
    return {"accounts_corrected": corrected}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
