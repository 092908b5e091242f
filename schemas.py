from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import AccountType, Frequency, TransactionStatus, TransactionType


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.checking
    starting_balance: Decimal = Field(default=Decimal("0"), allow_inf_nan=False)
    icon: str = Field(default="banknote", max_length=40)
    color: str = Field(default="#34C759", max_length=9)
    is_default: bool = False


class AccountUpdateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    icon: str = Field(default="banknote", max_length=40)
    color: str = Field(default="#34C759", max_length=9)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=9)


class ScheduleIn(BaseModel):
    frequency: Frequency
    anchor_date: date
    first_monthly_day: Optional[int] = Field(default=None, ge=1, le=31)
    second_monthly_day: Optional[int] = Field(default=None, ge=1, le=31)

    @model_validator(mode="after")
    def _monthly_days_match_frequency(self) -> "ScheduleIn":
        has_days = (
            self.first_monthly_day is not None,
            self.second_monthly_day is not None,
        )
        if self.frequency == Frequency.twice_monthly:
            if not all(has_days):
                raise ValueError("Twice monthly schedules need both days of the month")
        elif any(has_days):
            raise ValueError("Days of the month only apply to twice monthly schedules")
        return self


class TransactionIn(BaseModel):
    """A pending template: recurring when ``schedule`` is set, else due once."""

    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, allow_inf_nan=False)
    type: TransactionType
    is_estimated: bool = False
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None
    schedule: Optional[ScheduleIn] = None
    due_date: Optional[date] = None

    @model_validator(mode="after")
    def _needs_schedule_or_due_date(self) -> "TransactionIn":
        if self.schedule is None and self.due_date is None:
            raise ValueError("Provide either a schedule or a due date")
        return self


class QuickTransactionIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, allow_inf_nan=False)
    type: TransactionType
    date: date
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class TransactionUpdateIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, allow_inf_nan=False)
    date: date
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class CompleteOccurrenceIn(BaseModel):
    occurrence_date: date
    completion_date: date
    actual_amount: Optional[Decimal] = Field(default=None, ge=0, allow_inf_nan=False)
    notes: Optional[str] = None


class ScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    frequency: Frequency
    anchor_date: date
    first_monthly_day: Optional[int]
    second_monthly_day: Optional[int]
    last_processed: Optional[date]


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: AccountType
    balance: Decimal
    starting_balance: Decimal
    icon: str
    color: str
    is_default: bool


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    icon: Optional[str]
    color: Optional[str]
    is_system: bool


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    amount: Decimal
    is_estimated: bool
    type: TransactionType
    status: TransactionStatus
    date: date
    notes: Optional[str]
    account_id: Optional[int]
    category_id: Optional[int]
    schedule: Optional[ScheduleOut]
    completed_occurrences: list[date]

    @field_validator("completed_occurrences", mode="before")
    @classmethod
    def _sorted_dates(cls, value):
        return sorted(value or ())
