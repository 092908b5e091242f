from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from models import ProjectionMethod, TransactionStatus, TransactionType
from money import ZERO, safe_amount
from periods import add_months, month_start, window
from recurrence import (
    Occurrence,
    is_well_formed,
    occurrences_for,
    occurrences_in_month,
    scheduled_templates,
)

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class MonthlyProjection:
    month: date
    scheduled_income: Decimal
    scheduled_expenses: Decimal
    projected_balance: Decimal

    @property
    def net(self) -> Decimal:
        return self.scheduled_income - self.scheduled_expenses


@dataclass
class CalendarDay:
    date: date
    occurrences: list[Occurrence] = field(default_factory=list)
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO

    @property
    def has_income(self) -> bool:
        return any(o.transaction.type == TransactionType.income for o in self.occurrences)

    @property
    def has_expense(self) -> bool:
        return any(
            o.transaction.type == TransactionType.expense for o in self.occurrences
        )

    @property
    def has_transactions(self) -> bool:
        return bool(self.occurrences)


@dataclass(frozen=True)
class MonthlyFlow:
    month: date
    income: Decimal
    expenses: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expenses


@dataclass(frozen=True)
class CategorySpending:
    category_name: str
    category_color: Optional[str]
    amount: Decimal
    percentage: float


@dataclass(frozen=True)
class MonthlySpending:
    month: date
    categories: list[CategorySpending]
    total_spent: Decimal


def _sort_key(occurrence: Occurrence, today: date) -> tuple:
    return (
        0 if occurrence.due_date < today else 1,
        occurrence.due_date,
        getattr(occurrence.transaction, "id", None) or 0,
    )


def upcoming_occurrences(
    transactions: Iterable, today: date, horizon_days: int = 30
) -> list[Occurrence]:
    """Open occurrences of pending templates: past due first, then the horizon.

    The horizon is ``[today, today + horizon_days - 1]``. Past-due occurrences
    are looked up from each schedule's anchor date, with no lower bound.
    Occurrences already recorded as completed are left out.
    """
    horizon = window(today, horizon_days)
    yesterday = today - timedelta(days=1)
    result: list[Occurrence] = []
    for txn in scheduled_templates(transactions):
        if not is_well_formed(txn.schedule):
            continue
        past_due = occurrences_for(txn, txn.schedule.anchor_date, yesterday)
        ahead = occurrences_for(txn, horizon.start, horizon.end)
        result.extend(o for o in past_due + ahead if not o.is_completed)
    return sorted(result, key=lambda o: _sort_key(o, today))


def upcoming_totals(occurrences: Iterable[Occurrence]) -> dict[str, Decimal]:
    income = ZERO
    expenses = ZERO
    for occurrence in occurrences:
        if occurrence.transaction.type == TransactionType.income:
            income += occurrence.amount
        else:
            expenses += occurrence.amount
    return {"income": income, "expenses": expenses, "net": income - expenses}


def monthly_projections(
    transactions: Iterable,
    starting_balance: Decimal,
    today: date,
    *,
    months: int = 12,
    method: ProjectionMethod = ProjectionMethod.exact,
) -> list[MonthlyProjection]:
    templates = scheduled_templates(transactions)
    first_month = add_months(month_start(today), 1)
    running = safe_amount(starting_balance)
    projections: list[MonthlyProjection] = []
    for offset in range(months):
        month = add_months(first_month, offset)
        income = ZERO
        expenses = ZERO
        for txn in templates:
            count = occurrences_in_month(
                txn.schedule,
                month,
                method=method,
                completed=txn.completed_occurrences,
            )
            if not count:
                continue
            total = txn.safe_amount * count
            if txn.type == TransactionType.income:
                income += total
            else:
                expenses += total
        running = running + income - expenses
        projections.append(
            MonthlyProjection(
                month=month,
                scheduled_income=income,
                scheduled_expenses=expenses,
                projected_balance=running,
            )
        )
    return projections


def calendar_days(
    transactions: Iterable, displayed_month: date, *, months: int = 12
) -> list[CalendarDay]:
    start = month_start(displayed_month)
    end = add_months(start, months) - timedelta(days=1)

    by_day: dict[date, list[Occurrence]] = defaultdict(list)
    for txn in scheduled_templates(transactions):
        for occurrence in occurrences_for(txn, start, end):
            by_day[occurrence.due_date].append(occurrence)

    days: list[CalendarDay] = []
    current = start
    while current <= end:
        day_occurrences = by_day.get(current, [])
        income = sum(
            (o.amount for o in day_occurrences if o.transaction.type == TransactionType.income),
            ZERO,
        )
        expenses = sum(
            (o.amount for o in day_occurrences if o.transaction.type == TransactionType.expense),
            ZERO,
        )
        days.append(
            CalendarDay(
                date=current,
                occurrences=day_occurrences,
                total_income=income,
                total_expenses=expenses,
            )
        )
        current += timedelta(days=1)
    return days


def marked_days(days: Iterable[CalendarDay]) -> set[date]:
    return {day.date for day in days if day.has_transactions}


def completed_in_date_order(transactions: Iterable) -> list:
    completed = [t for t in transactions if t.status == TransactionStatus.completed]
    return sorted(completed, key=lambda t: (t.date, t.id or 0))


def running_balances(
    transactions: Iterable, starting_balance: Decimal
) -> dict[int, Decimal]:
    """Balance after each completed transaction, keyed by transaction id.

    Always recomputed from ``starting_balance``; an edit or delete anywhere in
    the history can move every later snapshot.
    """
    balance = safe_amount(starting_balance)
    snapshots: dict[int, Decimal] = {}
    for txn in completed_in_date_order(transactions):
        balance += txn.signed_amount
        snapshots[txn.id] = balance
    return snapshots


def expected_balance(starting_balance: Decimal, transactions: Iterable) -> Decimal:
    total = safe_amount(starting_balance)
    for txn in transactions:
        if txn.status == TransactionStatus.completed:
            total += txn.signed_amount
    return total


def monthly_cash_flow(transactions: Iterable) -> list[MonthlyFlow]:
    income: dict[date, Decimal] = defaultdict(lambda: ZERO)
    expenses: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for txn in transactions:
        if txn.status != TransactionStatus.completed:
            continue
        month = month_start(txn.date)
        if txn.type == TransactionType.income:
            income[month] += txn.safe_amount
        else:
            expenses[month] += txn.safe_amount
    months = set(income) | set(expenses)
    return [
        MonthlyFlow(month=m, income=income[m], expenses=expenses[m])
        for m in sorted(months, reverse=True)
    ]


def monthly_spending(transactions: Iterable) -> list[MonthlySpending]:
    grouped: dict[date, list] = defaultdict(list)
    for txn in transactions:
        if txn.status == TransactionStatus.completed and txn.type == TransactionType.expense:
            grouped[month_start(txn.date)].append(txn)

    result: list[MonthlySpending] = []
    for month in sorted(grouped, reverse=True):
        month_txns = grouped[month]
        total = sum((t.safe_amount for t in month_txns), ZERO)
        by_category: dict[str, list] = defaultdict(list)
        for txn in month_txns:
            name = txn.category.name if txn.category else UNCATEGORIZED
            by_category[name].append(txn)
        categories = []
        for name, txns in by_category.items():
            amount = sum((t.safe_amount for t in txns), ZERO)
            first = txns[0]
            categories.append(
                CategorySpending(
                    category_name=name,
                    category_color=first.category.color if first.category else None,
                    amount=amount,
                    percentage=float(amount / total) if total else 0.0,
                )
            )
        categories.sort(key=lambda c: c.amount, reverse=True)
        result.append(MonthlySpending(month=month, categories=categories, total_spent=total))
    return result


def ledger_by_month(
    transactions: Iterable, starting_balance: Decimal
) -> list[dict[str, object]]:
    """Completed transactions grouped by month, newest month first."""
    ordered = completed_in_date_order(transactions)
    balances = running_balances(ordered, starting_balance)
    groups: dict[date, list] = defaultdict(list)
    for txn in ordered:
        groups[month_start(txn.date)].append(txn)
    return [
        {
            "month": month,
            "entries": [
                {"transaction": txn, "balance": balances[txn.id]}
                for txn in sorted(groups[month], key=lambda t: (t.date, t.id or 0), reverse=True)
            ],
        }
        for month in sorted(groups, reverse=True)
    ]
