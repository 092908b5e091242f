from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from database import Base
from money import safe_amount, signed_amount

MONEY = Numeric(14, 2, asdecimal=True)


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    credit = "credit"
    investment = "investment"
    other = "other"


class Frequency(str, Enum):
    once = "once"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    twice_monthly = "twice_monthly"
    annual = "annual"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return _FREQUENCY_ALIASES.get(value.strip().lower())
        return None

    @property
    def label(self) -> str:
        return _FREQUENCY_LABELS[self]


_FREQUENCY_ALIASES = {
    "onetime": Frequency.once,
    "one_time": Frequency.once,
    "one-time": Frequency.once,
    "twicemonthly": Frequency.twice_monthly,
    "twice-monthly": Frequency.twice_monthly,
    "bi-weekly": Frequency.biweekly,
    "yearly": Frequency.annual,
}

_FREQUENCY_LABELS = {
    Frequency.once: "Once",
    Frequency.weekly: "Weekly",
    Frequency.biweekly: "Bi-Weekly",
    Frequency.monthly: "Monthly",
    Frequency.twice_monthly: "Twice Monthly",
    Frequency.annual: "Annual",
}


class ProjectionMethod(str, Enum):
    exact = "exact"
    approximate = "approximate"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False, default=AccountType.checking
    )
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    starting_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    icon: Mapped[str] = mapped_column(String(40), nullable=False, default="banknote")
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="#34C759")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account", cascade="all"
    )

    @validates("balance", "starting_balance")
    def _sanitize_money(self, _key, value):
        return safe_amount(value)

    @property
    def safe_balance(self) -> Decimal:
        return safe_amount(self.balance)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    icon: Mapped[Optional[str]] = mapped_column(String(40))
    color: Mapped[Optional[str]] = mapped_column(String(9))
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_category_type_name"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    is_estimated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus), nullable=False, default=TransactionStatus.pending
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE")
    )
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )

    account: Mapped[Optional["Account"]] = relationship(
        "Account", back_populates="transactions"
    )
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    schedule: Mapped[Optional["Schedule"]] = relationship(
        "Schedule",
        back_populates="transaction",
        uselist=False,
        cascade="all, delete-orphan",
    )
    completed_occurrence_rows: Mapped[list["CompletedOccurrence"]] = relationship(
        "CompletedOccurrence",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="CompletedOccurrence.occurrence_date",
    )

    __table_args__ = (
        Index("ix_transactions_account_status_date", "account_id", "status", "date"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )

    @validates("amount")
    def _sanitize_amount(self, _key, value):
        return safe_amount(value)

    @property
    def safe_amount(self) -> Decimal:
        return safe_amount(self.amount)

    @property
    def signed_amount(self) -> Decimal:
        return signed_amount(self.amount, self.type == TransactionType.income)

    @property
    def completed_occurrences(self) -> frozenset:
        return frozenset(row.occurrence_date for row in self.completed_occurrence_rows)

    def mark_occurrence_completed(self, occurrence_date) -> None:
        if occurrence_date in self.completed_occurrences:
            return
        self.completed_occurrence_rows.append(
            CompletedOccurrence(occurrence_date=occurrence_date)
        )


class Schedule(Base, TimestampMixin):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    anchor_date: Mapped[date] = mapped_column(Date, nullable=False)
    first_monthly_day: Mapped[Optional[int]] = mapped_column(Integer)
    second_monthly_day: Mapped[Optional[int]] = mapped_column(Integer)
    last_processed: Mapped[Optional[date]] = mapped_column(Date)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="schedule"
    )

    __table_args__ = (
        CheckConstraint(
            "first_monthly_day IS NULL OR first_monthly_day BETWEEN 1 AND 31",
            name="ck_schedule_first_day_range",
        ),
        CheckConstraint(
            "second_monthly_day IS NULL OR second_monthly_day BETWEEN 1 AND 31",
            name="ck_schedule_second_day_range",
        ),
    )


class CompletedOccurrence(Base):
    __tablename__ = "completed_occurrences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="completed_occurrence_rows"
    )

    __table_args__ = (
        UniqueConstraint(
            "transaction_id",
            "occurrence_date",
            name="uq_completed_occurrence_txn_date",
        ),
    )
