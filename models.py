import datetime as dt
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RecurrenceKind(str, Enum):
    daily = "daily"
    weekdays = "weekdays"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class NoteType(str, Enum):
    text = "text"
    list = "list"
    code = "code"
    drawing = "drawing"
    image = "image"
    voice = "voice"


class TodoPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class TodoStatus(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class BudgetPeriod(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"
    custom = "custom"


class PlanStatus(str, Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    principal: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(120))


class UserSettings(Base, TimestampMixin):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    finance_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )


event_tags = Table(
    "event_tags",
    Base.metadata,
    Column("event_id", Integer, ForeignKey("events.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)

note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", Integer, ForeignKey("notes.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)

todo_tags = Table(
    "todo_tags",
    Base.metadata,
    Column("todo_id", Integer, ForeignKey("todos.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class Tag(Base, TimestampMixin):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tag_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="#3b82f6")

    events: Mapped[list["Event"]] = relationship(
        "Event", secondary="event_tags", back_populates="tags"
    )
    notes: Mapped[list["Note"]] = relationship(
        "Note", secondary="note_tags", back_populates="tags"
    )
    todos: Mapped[list["Todo"]] = relationship(
        "Todo", secondary="todo_tags", back_populates="tags"
    )


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200))
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_kind: Mapped[Optional[RecurrenceKind]] = mapped_column(
        SAEnum(RecurrenceKind)
    )
    recurrence_end: Mapped[Optional[datetime]] = mapped_column(DateTime)

    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary="event_tags", back_populates="events"
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_event_end_after_start"),
        Index("ix_events_user_start", "user_id", "start_time"),
    )


class Note(Base, TimestampMixin):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NoteType] = mapped_column(
        SAEnum(NoteType), default=NoteType.text, nullable=False
    )

    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary="note_tags", back_populates="notes"
    )


class Todo(Base, TimestampMixin):
    __tablename__ = "todos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority: Mapped[Optional[TodoPriority]] = mapped_column(SAEnum(TodoPriority))
    status: Mapped[TodoStatus] = mapped_column(
        SAEnum(TodoStatus), default=TodoStatus.todo, nullable=False
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)

    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary="todo_tags", back_populates="todos"
    )
    subtasks: Mapped[list["Subtask"]] = relationship(
        "Subtask",
        back_populates="todo",
        order_by="Subtask.order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_todos_user_completed", "user_id", "completed"),)


class Subtask(Base, TimestampMixin):
    __tablename__ = "subtasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    todo_id: Mapped[int] = mapped_column(
        ForeignKey("todos.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    todo: Mapped["Todo"] = relationship("Todo", back_populates="subtasks")


class FinanceCategory(Base, TimestampMixin):
    __tablename__ = "finance_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(9))
    icon: Mapped[Optional[str]] = mapped_column(String(40))


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("finance_categories.id", ondelete="SET NULL")
    )

    category: Mapped[Optional["FinanceCategory"]] = relationship("FinanceCategory")

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    frequency: Mapped[Optional[str]] = mapped_column(String(40))

    __table_args__ = (
        Index("ix_incomes_user_date", "user_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_incomes_amount_positive"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False, default="savings")


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    deadline: Mapped[Optional[date]] = mapped_column(Date)
    description: Mapped[Optional[str]] = mapped_column(Text)


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(SAEnum(BudgetPeriod), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("finance_categories.id", ondelete="SET NULL")
    )

    category: Mapped[Optional["FinanceCategory"]] = relationship("FinanceCategory")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
    )


class InstallmentPlan(Base, TimestampMixin):
    __tablename__ = "installment_plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    number_of_payments: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_per_payment_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    first_payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("finance_categories.id", ondelete="SET NULL")
    )
    status: Mapped[PlanStatus] = mapped_column(
        SAEnum(PlanStatus), default=PlanStatus.active, nullable=False
    )

    category: Mapped[Optional["FinanceCategory"]] = relationship("FinanceCategory")
    payments: Mapped[list["InstallmentPayment"]] = relationship(
        "InstallmentPayment",
        back_populates="plan",
        order_by="InstallmentPayment.payment_number",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("total_amount_cents > 0", name="ck_plan_total_positive"),
        CheckConstraint("number_of_payments >= 1", name="ck_plan_payments_positive"),
        CheckConstraint(
            "day_of_month BETWEEN 1 AND 31", name="ck_plan_day_of_month_range"
        ),
    )


class InstallmentPayment(Base, TimestampMixin):
    __tablename__ = "installment_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_id: Mapped[int] = mapped_column(
        ForeignKey("installment_plans.id", ondelete="CASCADE"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    expense_id: Mapped[Optional[int]] = mapped_column(ForeignKey("expenses.id"))

    plan: Mapped["InstallmentPlan"] = relationship(
        "InstallmentPlan", back_populates="payments"
    )
    expense: Mapped[Optional["Expense"]] = relationship("Expense")

    __table_args__ = (
        UniqueConstraint("plan_id", "payment_number", name="uq_payment_plan_number"),
        Index("ix_installment_payments_plan", "plan_id"),
    )
