import datetime as dt
from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    BudgetPeriod,
    NoteType,
    PlanStatus,
    RecurrenceKind,
    TodoPriority,
    TodoStatus,
)
from recurrence import to_local_naive

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


def _bare_date(value):
    # "YYYY-MM-DD" must stay a date so it covers the whole day
    if isinstance(value, str) and len(value.strip()) == 10:
        return date.fromisoformat(value.strip())
    return value


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TagIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)


class TagUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)


class TagOut(ORMModel):
    id: int
    name: str
    color: str


class TagUsageOut(TagOut):
    event_count: int = 0
    note_count: int = 0
    todo_count: int = 0


class EventIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = Field(None, max_length=200)
    tag_ids: list[int] = Field(default_factory=list)
    is_recurring: bool = False
    recurrence_kind: Optional[RecurrenceKind] = None
    recurrence_end: Optional[Union[datetime, date]] = None

    @field_validator("recurrence_end", mode="before")
    @classmethod
    def _keep_bare_date(cls, value):
        return _bare_date(value)

    @model_validator(mode="after")
    def _check_times(self) -> "EventIn":
        if to_local_naive(self.end_time) <= to_local_naive(self.start_time):
            raise ValueError("End time must be after start time")
        if self.is_recurring and self.recurrence_kind is None:
            raise ValueError("Recurrence kind is required for recurring events")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=200)
    tag_ids: Optional[list[int]] = None
    is_recurring: Optional[bool] = None
    recurrence_kind: Optional[RecurrenceKind] = None
    recurrence_end: Optional[Union[datetime, date]] = None

    @field_validator("recurrence_end", mode="before")
    @classmethod
    def _keep_bare_date(cls, value):
        return _bare_date(value)


class EventOut(ORMModel):
    id: int
    title: str
    description: Optional[str]
    start_time: datetime
    end_time: datetime
    location: Optional[str]
    is_recurring: bool
    recurrence_kind: Optional[RecurrenceKind]
    recurrence_end: Optional[datetime]
    tags: list[TagOut]


class NoteIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    type: NoteType = NoteType.text
    tag_ids: list[int] = Field(default_factory=list)


class NoteUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    type: Optional[NoteType] = None
    tag_ids: Optional[list[int]] = None


class NoteOut(ORMModel):
    id: int
    title: str
    content: str
    type: NoteType
    tags: list[TagOut]
    created_at: datetime
    updated_at: datetime


class SubtaskIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    completed: bool = False


class SubtaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    completed: Optional[bool] = None


class SubtaskOut(ORMModel):
    id: int
    title: str
    completed: bool
    order: int


class TodoIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    completed: bool = False
    priority: Optional[TodoPriority] = None
    status: TodoStatus = TodoStatus.todo
    due_date: Optional[datetime] = None
    tag_ids: list[int] = Field(default_factory=list)
    subtasks: list[SubtaskIn] = Field(default_factory=list)


class TodoUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[TodoPriority] = None
    status: Optional[TodoStatus] = None
    due_date: Optional[datetime] = None
    tag_ids: Optional[list[int]] = None
    subtasks: Optional[list[SubtaskIn]] = None


class TodoOut(ORMModel):
    id: int
    title: str
    description: Optional[str]
    completed: bool
    priority: Optional[TodoPriority]
    status: TodoStatus
    due_date: Optional[datetime]
    tags: list[TagOut]
    subtasks: list[SubtaskOut]


class FinanceCategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(None, max_length=40)


class FinanceCategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(None, max_length=40)


class FinanceCategoryOut(ORMModel):
    id: int
    name: str
    color: Optional[str]
    icon: Optional[str]


class ExpenseIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    date: dt.date
    category_id: Optional[int] = None


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(None, gt=0)
    date: Optional[dt.date] = None
    category_id: Optional[int] = None


class ExpenseOut(ORMModel):
    id: int
    description: str
    amount_cents: int
    date: dt.date
    category_id: Optional[int]


class IncomeIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    date: dt.date
    is_recurring: bool = False
    frequency: Optional[str] = Field(None, max_length=40)


class IncomeUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(None, gt=0)
    date: Optional[dt.date] = None
    is_recurring: Optional[bool] = None
    frequency: Optional[str] = Field(None, max_length=40)


class IncomeOut(ORMModel):
    id: int
    description: str
    amount_cents: int
    date: dt.date
    is_recurring: bool
    frequency: Optional[str]


class InvestmentIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    date: dt.date
    type: str = Field("savings", min_length=1, max_length=40)


class InvestmentUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(None, gt=0)
    date: Optional[dt.date] = None
    type: Optional[str] = Field(None, min_length=1, max_length=40)


class InvestmentOut(ORMModel):
    id: int
    description: str
    amount_cents: int
    date: dt.date
    type: str


class SavingsGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., gt=0)
    current_amount_cents: int = Field(0, ge=0)
    deadline: Optional[date] = None
    description: Optional[str] = None


class SavingsGoalUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    target_amount_cents: Optional[int] = Field(None, gt=0)
    current_amount_cents: Optional[int] = Field(None, ge=0)
    deadline: Optional[date] = None
    description: Optional[str] = None


class SavingsGoalOut(ORMModel):
    id: int
    name: str
    target_amount_cents: int
    current_amount_cents: int
    deadline: Optional[date]
    description: Optional[str]


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., gt=0)
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date] = None
    category_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_range(self) -> "BudgetIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class BudgetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(None, gt=0)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[int] = None


class BudgetOut(ORMModel):
    id: int
    name: str
    amount_cents: int
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date]
    category_id: Optional[int]


class BudgetProgressOut(BudgetOut):
    window_start: date
    window_end: date
    spent_cents: int
    remaining_cents: int


class InstallmentPlanIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    total_amount_cents: int = Field(..., gt=0)
    number_of_payments: int = Field(..., ge=1, le=600)
    day_of_month: int = Field(..., ge=1, le=31)
    first_payment_date: date
    category_id: Optional[int] = None


class InstallmentPlanUpdate(BaseModel):
    status: PlanStatus


class InstallmentPaymentOut(ORMModel):
    id: int
    plan_id: int
    amount_cents: int
    due_date: date
    payment_number: int
    is_paid: bool
    paid_date: Optional[datetime]
    expense_id: Optional[int]


class InstallmentPlanOut(ORMModel):
    id: int
    description: str
    total_amount_cents: int
    number_of_payments: int
    amount_per_payment_cents: int
    day_of_month: int
    first_payment_date: date
    category_id: Optional[int]
    status: PlanStatus
    payments: list[InstallmentPaymentOut]


class SettlementOut(BaseModel):
    payment: InstallmentPaymentOut
    expense: ExpenseOut


class UserSettingsUpdate(BaseModel):
    finance_enabled: Optional[bool] = None


class UserSettingsOut(ORMModel):
    user_id: int
    finance_enabled: bool


class UserOut(ORMModel):
    id: int
    principal: str
    display_name: Optional[str]
