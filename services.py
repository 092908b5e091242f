from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from config import Settings, get_settings
from forecast import (
    CalendarDay,
    MonthlyFlow,
    MonthlyProjection,
    MonthlySpending,
    calendar_days,
    expected_balance,
    ledger_by_month,
    monthly_cash_flow,
    monthly_projections,
    monthly_spending,
    running_balances,
    upcoming_occurrences,
    upcoming_totals,
)
from models import (
    Account,
    Category,
    Frequency,
    ProjectionMethod,
    Schedule,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from money import ZERO, safe_amount
from periods import local_today, month_start
from recurrence import Occurrence, generate_occurrences, next_occurrence, occurrences_for
from schemas import (
    AccountIn,
    AccountUpdateIn,
    CategoryIn,
    CompleteOccurrenceIn,
    QuickTransactionIn,
    ScheduleIn,
    TransactionIn,
    TransactionUpdateIn,
)

logger = logging.getLogger(__name__)


SYSTEM_CATEGORIES: list[tuple[str, TransactionType, str, str]] = [
    ("Salary", TransactionType.income, "dollarsign.circle", "#34C759"),
    ("Investments", TransactionType.income, "chart.line.uptrend.xyaxis", "#007AFF"),
    ("Freelance", TransactionType.income, "briefcase", "#5856D6"),
    ("Gifts", TransactionType.income, "gift", "#32ADE6"),
    ("Reimbursement", TransactionType.income, "arrow.counterclockwise", "#00B386"),
    ("Other Income", TransactionType.income, "plus.circle", "#4CD964"),
    ("Housing", TransactionType.expense, "house", "#FF3B30"),
    ("Utilities", TransactionType.expense, "bolt", "#FF9500"),
    ("Food & Dining", TransactionType.expense, "fork.knife", "#B4D147"),
    ("Transportation", TransactionType.expense, "car", "#5856D6"),
    ("Healthcare", TransactionType.expense, "cross", "#FF2D55"),
    ("Entertainment", TransactionType.expense, "tv", "#AF52DE"),
    ("Shopping", TransactionType.expense, "cart", "#FF6B6B"),
    ("Education", TransactionType.expense, "book", "#5AC8FA"),
    ("Insurance", TransactionType.expense, "shield", "#FF8000"),
    ("Savings", TransactionType.expense, "banknote", "#30B0C7"),
    ("Other Expense", TransactionType.expense, "circle", "#8E8E93"),
]


def apply_to_balance(
    account: Optional[Account],
    txn_type: TransactionType,
    amount: Decimal,
    *,
    reverse: bool = False,
) -> None:
    if account is None:
        return
    value = safe_amount(amount)
    if txn_type == TransactionType.expense:
        value = -value
    if reverse:
        value = -value
    account.balance = account.safe_balance + value


def _transactions_stmt(account_id: Optional[int] = None):
    stmt = select(Transaction).options(
        selectinload(Transaction.schedule),
        selectinload(Transaction.completed_occurrence_rows),
        selectinload(Transaction.category),
    )
    if account_id is not None:
        stmt = stmt.where(Transaction.account_id == account_id)
    return stmt.order_by(Transaction.date, Transaction.id)


class AccountService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Account]:
        stmt = select(Account).order_by(Account.is_default.desc(), Account.name)
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account:
            raise ValueError("Account not found")
        return account

    def get_default(self) -> Optional[Account]:
        stmt = (
            select(Account)
            .order_by(Account.is_default.desc(), Account.id)
            .limit(1)
        )
        return self.session.scalar(stmt)

    def resolve(self, account_id: Optional[int]) -> Optional[Account]:
        if account_id is None:
            return self.get_default()
        return self.get(account_id)

    def create(self, data: AccountIn) -> Account:
        has_accounts = (
            self.session.execute(select(func.count(Account.id))).scalar_one() or 0
        ) > 0
        account = Account(
            name=data.name.strip(),
            type=data.type,
            balance=data.starting_balance,
            starting_balance=data.starting_balance,
            icon=data.icon,
            color=data.color,
            is_default=False,
        )
        self.session.add(account)
        self.session.flush()
        if data.is_default or not has_accounts:
            self._make_default(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountUpdateIn) -> Account:
        account = self.get(account_id)
        account.name = data.name.strip()
        account.type = data.type
        account.icon = data.icon
        account.color = data.color
        self.session.commit()
        self.session.refresh(account)
        return account

    def set_default(self, account_id: int) -> Account:
        account = self.get(account_id)
        self._make_default(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def _make_default(self, account: Account) -> None:
        for other in self.session.scalars(
            select(Account).where(Account.is_default.is_(True), Account.id != account.id)
        ):
            other.is_default = False
        account.is_default = True

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        was_default = account.is_default
        self.session.delete(account)
        self.session.flush()
        if was_default:
            replacement = self.session.scalar(select(Account).order_by(Account.id).limit(1))
            if replacement:
                replacement.is_default = True
        self.session.commit()

    def total_balance(self) -> Decimal:
        return sum((a.safe_balance for a in self.list_all()), ZERO)

    def recomputed_balance(self, account_id: int) -> Decimal:
        account = self.get(account_id)
        txns = self.session.scalars(
            select(Transaction).where(
                Transaction.account_id == account.id,
                Transaction.status == TransactionStatus.completed,
            )
        ).all()
        return expected_balance(account.starting_balance, txns)

    def reconcile_all(self) -> int:
        """Reset any balance that drifted from its completed history."""
        corrected = 0
        for account in self.list_all():
            expected = self.recomputed_balance(account.id)
            if account.safe_balance != expected:
                logger.warning(
                    f"balance_drift: account_id={account.id} stored={account.balance} expected={expected}"
                )
                account.balance = expected
                corrected += 1
        self.session.commit()
        logger.info(f"balance_reconcile: accounts_corrected={corrected}")
        return corrected


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self, txn_type: Optional[TransactionType] = None) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.name)
        if txn_type:
            stmt = stmt.where(Category.type == txn_type)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        existing = self.session.scalar(
            select(Category).where(Category.type == data.type, Category.name == name)
        )
        if existing:
            raise ValueError("Category already exists")
        category = Category(
            name=name,
            type=data.type,
            icon=data.icon,
            color=data.color,
            is_system=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_system:
            raise ValueError("System categories cannot be deleted")
        for txn in list(category.transactions):
            txn.category = None
        self.session.delete(category)
        self.session.commit()

    def create_system_categories(self) -> int:
        existing = {
            (c.type, c.name)
            for c in self.session.scalars(select(Category).where(Category.is_system.is_(True)))
        }
        created = 0
        for name, txn_type, icon, color in SYSTEM_CATEGORIES:
            if (txn_type, name) in existing:
                continue
            self.session.add(
                Category(name=name, type=txn_type, icon=icon, color=color, is_system=True)
            )
            created += 1
        self.session.commit()
        return created


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.accounts = AccountService(session)

    def get(self, transaction_id: int) -> Transaction:
        stmt = _transactions_stmt().where(Transaction.id == transaction_id)
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def _reloaded(self, transaction_id: int) -> Transaction:
        stmt = _transactions_stmt().where(Transaction.id == transaction_id)
        return self.session.scalars(
            stmt.execution_options(populate_existing=True)
        ).one()

    def list(
        self,
        account_id: Optional[int] = None,
        status: Optional[TransactionStatus] = None,
    ) -> list[Transaction]:
        stmt = _transactions_stmt(account_id)
        if status:
            stmt = stmt.where(Transaction.status == status)
        return self.session.scalars(stmt).all()

    def _category_for(
        self, category_id: Optional[int], txn_type: TransactionType
    ) -> Optional[Category]:
        if category_id is None:
            return None
        category = CategoryService(self.session).get(category_id)
        if category.type != txn_type:
            raise ValueError("Category type mismatch")
        return category

    def _require_account(self, account_id: Optional[int]) -> Account:
        account = self.accounts.resolve(account_id)
        if account is None:
            raise ValueError("Account not found")
        return account

    def create(self, data: TransactionIn) -> Transaction:
        account = self._require_account(data.account_id)
        category = self._category_for(data.category_id, data.type)
        if data.schedule is not None:
            schedule = Schedule(
                frequency=data.schedule.frequency,
                anchor_date=data.schedule.anchor_date,
                first_monthly_day=data.schedule.first_monthly_day,
                second_monthly_day=data.schedule.second_monthly_day,
            )
        else:
            schedule = Schedule(frequency=Frequency.once, anchor_date=data.due_date)
        txn = Transaction(
            title=data.title.strip(),
            amount=data.amount,
            is_estimated=data.is_estimated,
            type=data.type,
            status=TransactionStatus.pending,
            date=schedule.anchor_date,
            notes=data.notes,
            account=account,
            category=category,
            schedule=schedule,
        )
        self.session.add(txn)
        self.session.commit()
        return self._reloaded(txn.id)

    def quick_entry(self, data: QuickTransactionIn) -> Transaction:
        account = self._require_account(data.account_id)
        category = self._category_for(data.category_id, data.type)
        txn = Transaction(
            title=data.title.strip(),
            amount=data.amount,
            is_estimated=False,
            type=data.type,
            status=TransactionStatus.completed,
            date=data.date,
            notes=data.notes,
            account=account,
            category=category,
        )
        self.session.add(txn)
        apply_to_balance(account, txn.type, txn.amount)
        self.session.commit()
        return self._reloaded(txn.id)

    def complete_occurrence(
        self, transaction_id: int, data: CompleteOccurrenceIn
    ) -> Transaction:
        """Record one due date of a pending transaction as paid.

        Scheduled templates spawn a new completed transaction and remember the
        due date; a pending transaction without a schedule is completed in
        place. Either way the account balance moves by the final amount.
        """
        txn = self.get(transaction_id)
        if txn.status != TransactionStatus.pending:
            raise ValueError("Only pending transactions can be completed")

        final_amount = txn.safe_amount
        if txn.is_estimated and data.actual_amount is not None:
            final_amount = safe_amount(data.actual_amount)

        if txn.schedule is None:
            txn.status = TransactionStatus.completed
            txn.date = data.completion_date
            txn.amount = final_amount
            txn.notes = data.notes
            apply_to_balance(txn.account, txn.type, final_amount)
            self.session.commit()
            return self._reloaded(txn.id)

        due = data.occurrence_date
        if due in txn.completed_occurrences:
            raise ValueError("Occurrence already completed")
        if generate_occurrences(txn.schedule, due, due) != [due]:
            raise ValueError("Date is not a scheduled occurrence")

        instance = Transaction(
            title=txn.title,
            amount=final_amount,
            is_estimated=False,
            type=txn.type,
            status=TransactionStatus.completed,
            date=data.completion_date,
            notes=data.notes,
            account=txn.account,
            category=txn.category,
        )
        self.session.add(instance)
        apply_to_balance(txn.account, txn.type, final_amount)
        txn.mark_occurrence_completed(due)
        if txn.schedule.last_processed is None or txn.schedule.last_processed < due:
            txn.schedule.last_processed = due
        self.session.commit()
        instance = self._reloaded(instance.id)
        logger.info(
            f"occurrence_completed: template_id={txn.id} due={due.isoformat()} instance_id={instance.id} amount={final_amount}"
        )
        return instance

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        txn = self.get(transaction_id)
        if txn.schedule is not None and data.date != txn.date:
            raise ValueError("Change the schedule to move a scheduled transaction")
        # Leaving account_id out keeps the transaction where it is.
        new_account = (
            self.accounts.get(data.account_id)
            if data.account_id is not None
            else txn.account
        )
        category = self._category_for(data.category_id, txn.type)
        new_amount = safe_amount(data.amount)

        if txn.status == TransactionStatus.completed:
            old_account = txn.account
            if old_account is not new_account:
                apply_to_balance(old_account, txn.type, txn.amount, reverse=True)
                apply_to_balance(new_account, txn.type, new_amount)
            else:
                apply_to_balance(old_account, txn.type, new_amount - txn.safe_amount)

        txn.account = new_account
        txn.category = category
        txn.title = data.title.strip()
        txn.amount = new_amount
        txn.date = data.date
        txn.notes = data.notes
        self.session.commit()
        return self._reloaded(txn.id)

    def update_schedule(self, transaction_id: int, data: ScheduleIn) -> Transaction:
        txn = self.get(transaction_id)
        if txn.status != TransactionStatus.pending or txn.schedule is None:
            raise ValueError("Only pending scheduled transactions have a schedule")
        schedule = txn.schedule
        schedule.frequency = data.frequency
        schedule.anchor_date = data.anchor_date
        schedule.first_monthly_day = data.first_monthly_day
        schedule.second_monthly_day = data.second_monthly_day
        txn.date = data.anchor_date
        self.session.commit()
        return self._reloaded(txn.id)

    def cancel(self, transaction_id: int) -> Transaction:
        txn = self.get(transaction_id)
        if txn.status != TransactionStatus.pending:
            raise ValueError("Only pending transactions can be cancelled")
        txn.status = TransactionStatus.cancelled
        self.session.commit()
        return self._reloaded(txn.id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        if txn.status == TransactionStatus.completed:
            apply_to_balance(txn.account, txn.type, txn.amount, reverse=True)
        self.session.delete(txn)
        self.session.commit()

    def occurrences(
        self, transaction_id: int, start: date, end: date
    ) -> list[Occurrence]:
        return occurrences_for(self.get(transaction_id), start, end)

    def next_due(self, transaction_id: int, after: Optional[date] = None) -> Optional[date]:
        txn = self.get(transaction_id)
        if txn.schedule is None:
            return None
        return next_occurrence(txn.schedule, after or local_today())


class ReportService:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.accounts = AccountService(session)

    def _transactions(self, account_id: Optional[int] = None) -> list[Transaction]:
        return self.session.scalars(_transactions_stmt(account_id)).all()

    def upcoming(
        self, account_id: Optional[int] = None, today: Optional[date] = None
    ) -> list[Occurrence]:
        return upcoming_occurrences(
            self._transactions(account_id),
            today or local_today(),
            horizon_days=self.settings.upcoming_days,
        )

    def dashboard(
        self, account_id: Optional[int] = None, today: Optional[date] = None
    ) -> dict[str, object]:
        if account_id is not None:
            balance = self.accounts.get(account_id).safe_balance
        else:
            balance = self.accounts.total_balance()
        upcoming = self.upcoming(account_id, today)
        return {
            "total_balance": balance,
            "upcoming": upcoming,
            "upcoming_totals": upcoming_totals(upcoming),
        }

    def projections(
        self,
        account_id: Optional[int] = None,
        today: Optional[date] = None,
        method: Optional[ProjectionMethod] = None,
    ) -> list[MonthlyProjection]:
        account = self.accounts.resolve(account_id)
        if account is None:
            return []
        return monthly_projections(
            self._transactions(account.id),
            account.safe_balance,
            today or local_today(),
            months=self.settings.projection_months,
            method=method or ProjectionMethod(self.settings.projection_method),
        )

    def calendar(
        self, account_id: Optional[int] = None, month: Optional[date] = None
    ) -> list[CalendarDay]:
        displayed = month_start(month or local_today())
        return calendar_days(
            self._transactions(account_id),
            displayed,
            months=self.settings.calendar_months,
        )

    def _ledger_account(self, account_id: Optional[int]) -> Account:
        account = self.accounts.resolve(account_id)
        if account is None:
            raise ValueError("Account not found")
        return account

    def running_balances(self, account_id: Optional[int] = None) -> dict[int, Decimal]:
        account = self._ledger_account(account_id)
        return running_balances(self._transactions(account.id), account.starting_balance)

    def ledger(self, account_id: Optional[int] = None) -> list[dict[str, object]]:
        account = self._ledger_account(account_id)
        return ledger_by_month(self._transactions(account.id), account.starting_balance)

    def cash_flow(self, account_id: Optional[int] = None) -> list[MonthlyFlow]:
        return monthly_cash_flow(self._transactions(account_id))

    def spending(self, account_id: Optional[int] = None) -> list[MonthlySpending]:
        return monthly_spending(self._transactions(account_id))
