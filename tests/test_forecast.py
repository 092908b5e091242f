from datetime import date
from decimal import Decimal

from forecast import (
    UNCATEGORIZED,
    calendar_days,
    expected_balance,
    ledger_by_month,
    marked_days,
    monthly_cash_flow,
    monthly_projections,
    monthly_spending,
    running_balances,
    upcoming_occurrences,
    upcoming_totals,
)
from models import (
    Category,
    Frequency,
    ProjectionMethod,
    Schedule,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from money import safe_amount
from recurrence import Occurrence


def _template(
    txn_id: int,
    amount,
    txn_type: TransactionType,
    frequency: Frequency,
    anchor: date,
    status: TransactionStatus = TransactionStatus.pending,
) -> Transaction:
    return Transaction(
        id=txn_id,
        title=f"Template {txn_id}",
        amount=amount,
        type=txn_type,
        status=status,
        date=anchor,
        schedule=Schedule(frequency=frequency, anchor_date=anchor),
    )


def _completed(txn_id: int, amount, txn_type: TransactionType, on: date, category=None):
    return Transaction(
        id=txn_id,
        title=f"Entry {txn_id}",
        amount=amount,
        type=txn_type,
        status=TransactionStatus.completed,
        date=on,
        category=category,
    )


def test_upcoming_lists_past_due_first_and_skips_completed():
    weekly = _template(1, 25, TransactionType.expense, Frequency.weekly, date(2024, 1, 1))
    weekly.mark_occurrence_completed(date(2024, 1, 1))
    far_away = _template(2, 10, TransactionType.expense, Frequency.once, date(2024, 3, 1))
    cancelled = _template(
        3,
        10,
        TransactionType.expense,
        Frequency.once,
        date(2024, 1, 20),
        status=TransactionStatus.cancelled,
    )

    upcoming = upcoming_occurrences(
        [weekly, far_away, cancelled], date(2024, 1, 15), horizon_days=30
    )

    assert [o.due_date for o in upcoming] == [
        date(2024, 1, 8),
        date(2024, 1, 15),
        date(2024, 1, 22),
        date(2024, 1, 29),
        date(2024, 2, 5),
        date(2024, 2, 12),
    ]
    assert all(o.transaction is weekly for o in upcoming)


def test_upcoming_totals_split_by_type():
    salary = _template(1, 1000, TransactionType.income, Frequency.once, date(2024, 1, 20))
    rent = _template(2, 400, TransactionType.expense, Frequency.once, date(2024, 1, 21))
    totals = upcoming_totals(upcoming_occurrences([salary, rent], date(2024, 1, 15)))
    assert totals == {
        "income": Decimal("1000"),
        "expenses": Decimal("400"),
        "net": Decimal("600"),
    }


def test_projections_start_next_month_and_carry_balance():
    salary = _template(1, 1000, TransactionType.income, Frequency.monthly, date(2024, 1, 1))
    rent = _template(2, 400, TransactionType.expense, Frequency.monthly, date(2024, 1, 5))

    rows = monthly_projections(
        [salary, rent], Decimal("500"), date(2024, 1, 15), months=2
    )

    assert [r.month for r in rows] == [date(2024, 2, 1), date(2024, 3, 1)]
    assert [r.net for r in rows] == [Decimal("600"), Decimal("600")]
    assert [r.projected_balance for r in rows] == [Decimal("1100"), Decimal("1700")]


def test_projections_exact_counts_calendar_but_approximate_uses_multipliers():
    groceries = _template(1, 100, TransactionType.expense, Frequency.weekly, date(2024, 1, 4))
    today = date(2024, 1, 15)

    exact = monthly_projections([groceries], Decimal("0"), today, months=1)
    approximate = monthly_projections(
        [groceries], Decimal("0"), today, months=1, method=ProjectionMethod.approximate
    )

    # February 2024 has five Thursdays.
    assert exact[0].scheduled_expenses == Decimal("500")
    assert approximate[0].scheduled_expenses == Decimal("400")


def test_projections_ignore_completed_occurrences():
    rent = _template(1, 400, TransactionType.expense, Frequency.monthly, date(2024, 1, 5))
    rent.mark_occurrence_completed(date(2024, 2, 5))
    rows = monthly_projections([rent], Decimal("1000"), date(2024, 1, 15), months=2)
    assert [r.scheduled_expenses for r in rows] == [Decimal("0"), Decimal("400")]


def test_calendar_marks_days_with_occurrences():
    salary = _template(1, 1000, TransactionType.income, Frequency.monthly, date(2024, 1, 10))
    rent = _template(2, 400, TransactionType.expense, Frequency.once, date(2024, 2, 10))

    days = calendar_days([salary, rent], date(2024, 2, 14), months=1)

    assert len(days) == 29
    assert days[0].date == date(2024, 2, 1)
    assert marked_days(days) == {date(2024, 2, 10)}
    tenth = days[9]
    assert tenth.has_income and tenth.has_expense
    assert tenth.total_income == Decimal("1000")
    assert tenth.total_expenses == Decimal("400")


def test_running_balances_follow_date_order():
    txns = [
        _completed(2, 30, TransactionType.expense, date(2024, 1, 2)),
        _completed(1, 50, TransactionType.income, date(2024, 1, 1)),
        _template(3, 999, TransactionType.expense, Frequency.once, date(2024, 1, 3)),
    ]
    assert running_balances(txns, Decimal("100")) == {
        1: Decimal("150"),
        2: Decimal("120"),
    }
    assert expected_balance(Decimal("100"), txns) == Decimal("120")


def test_ledger_groups_newest_month_first():
    txns = [
        _completed(1, 50, TransactionType.income, date(2024, 1, 1)),
        _completed(2, 30, TransactionType.expense, date(2024, 1, 20)),
        _completed(3, 10, TransactionType.expense, date(2024, 2, 3)),
    ]
    groups = ledger_by_month(txns, Decimal("100"))
    assert [g["month"] for g in groups] == [date(2024, 2, 1), date(2024, 1, 1)]
    january = groups[1]["entries"]
    assert [e["transaction"].id for e in january] == [2, 1]
    assert [e["balance"] for e in january] == [Decimal("120"), Decimal("150")]
    assert groups[0]["entries"][0]["balance"] == Decimal("110")


def test_monthly_cash_flow_newest_first():
    txns = [
        _completed(1, 100, TransactionType.income, date(2024, 1, 3)),
        _completed(2, 40, TransactionType.expense, date(2024, 1, 9)),
        _completed(3, 10, TransactionType.expense, date(2024, 2, 1)),
        _template(4, 500, TransactionType.income, Frequency.once, date(2024, 2, 2)),
    ]
    flows = monthly_cash_flow(txns)
    assert [(f.month, f.income, f.expenses) for f in flows] == [
        (date(2024, 2, 1), Decimal("0"), Decimal("10")),
        (date(2024, 1, 1), Decimal("100"), Decimal("40")),
    ]
    assert flows[1].net == Decimal("60")


def test_monthly_spending_groups_by_category():
    food = Category(id=1, name="Food & Dining", type=TransactionType.expense, color="#B4D147")
    txns = [
        _completed(1, 20, TransactionType.expense, date(2024, 2, 1), category=food),
        _completed(2, 10, TransactionType.expense, date(2024, 2, 5), category=food),
        _completed(3, 10, TransactionType.expense, date(2024, 2, 7)),
        _completed(4, 500, TransactionType.income, date(2024, 2, 7)),
    ]
    [february] = monthly_spending(txns)
    assert february.total_spent == Decimal("40")
    assert [c.category_name for c in february.categories] == ["Food & Dining", UNCATEGORIZED]
    assert february.categories[0].percentage == 0.75
    assert february.categories[0].category_color == "#B4D147"
    assert february.categories[1].category_color is None


def test_non_finite_amounts_are_treated_as_zero():
    broken = _completed(1, Decimal("NaN"), TransactionType.income, date(2024, 1, 1))
    assert broken.amount == Decimal("0")
    assert running_balances([broken], Decimal("Infinity")) == {1: Decimal("0")}
    assert safe_amount(float("inf")) == Decimal("0")
    assert safe_amount("not a number") == Decimal("0")
    assert safe_amount("12.345") == Decimal("12.35")
    assert safe_amount(Decimal("0.004")) == Decimal("0.00")
    assert Occurrence(transaction=broken, due_date=date(2024, 1, 1), amount=float("nan")).amount == Decimal("0")
