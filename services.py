from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from config import get_settings
from installments import payment_schedule, settlement_description
from models import (
    Budget,
    Event,
    Expense,
    FinanceCategory,
    Income,
    InstallmentPayment,
    InstallmentPlan,
    Investment,
    Note,
    PlanStatus,
    SavingsGoal,
    Subtask,
    Tag,
    Todo,
    TodoStatus,
    User,
    UserSettings,
    event_tags,
    note_tags,
    todo_tags,
)
from periods import Period, budget_window, spent_cents
from recurrence import (
    expand_occurrences,
    local_now,
    local_today,
    recurrence_end_instant,
    to_local_naive,
)
from schemas import (
    BudgetIn,
    BudgetUpdate,
    EventIn,
    EventUpdate,
    InstallmentPlanIn,
    NoteIn,
    NoteUpdate,
    SubtaskUpdate,
    TagIn,
    TagUpdate,
    TodoIn,
    TodoUpdate,
    UserSettingsUpdate,
)

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    """Target id is absent or owned by someone else."""


class ConflictError(ValueError):
    """The request is well-formed but the current state forbids it."""


class SignInRejected(ValueError):
    pass


def _dedupe(ids: Sequence[int]) -> list[int]:
    seen: set[int] = set()
    result: list[int] = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _apply(obj: object, data: BaseModel, *, exclude: set[str] | None = None) -> None:
    columns = obj.__table__.c
    for field, value in data.model_dump(exclude_unset=True, exclude=exclude).items():
        # an explicit null on a required column means "leave unchanged"
        if value is None and field in columns and not columns[field].nullable:
            continue
        setattr(obj, field, value)


class OwnedService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned(self, model, obj_id: int, message: str):
        obj = self.session.get(model, obj_id)
        if not obj or obj.user_id != self.user_id:
            raise NotFoundError(message)
        return obj

    def _tags(self, tag_ids: Sequence[int]) -> list[Tag]:
        ids = _dedupe(tag_ids)
        if not ids:
            return []
        tags = self.session.scalars(
            select(Tag).where(Tag.user_id == self.user_id, Tag.id.in_(ids))
        ).all()
        if len(tags) != len(ids):
            raise NotFoundError("Tag not found")
        by_id = {tag.id: tag for tag in tags}
        return [by_id[tag_id] for tag_id in ids]

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None:
            self._owned(FinanceCategory, category_id, "Category not found")

    def _commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def sign_in(self, principal: str) -> User:
        principal = principal.strip()
        if not principal:
            raise SignInRejected("Missing identity")
        allowed = get_settings().allowed_principal
        if allowed and principal != allowed:
            logger.warning(f"sign_in_rejected: principal={principal!r}")
            raise SignInRejected("This account is not allowed to sign in")

        user = self.session.scalar(select(User).where(User.principal == principal))
        if user:
            return user
        user = User(principal=principal)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id}")
        return user


class SettingsService(OwnedService):
    def get(self) -> UserSettings:
        stmt = select(UserSettings).where(UserSettings.user_id == self.user_id)
        settings = self.session.scalar(stmt)
        if settings:
            return settings
        settings = UserSettings(user_id=self.user_id, finance_enabled=False)
        self.session.add(settings)
        self._commit()
        self.session.refresh(settings)
        return settings

    def update(self, data: UserSettingsUpdate) -> UserSettings:
        settings = self.get()
        if data.finance_enabled is not None:
            settings.finance_enabled = data.finance_enabled
        self._commit()
        self.session.refresh(settings)
        return settings


class TagService(OwnedService):
    def list_all(self) -> list[Tag]:
        stmt = select(Tag).where(Tag.user_id == self.user_id).order_by(Tag.name)
        return list(self.session.scalars(stmt).all())

    def usage_counts(self) -> dict[int, dict[str, int]]:
        counts: dict[int, dict[str, int]] = {}
        for key, table in (
            ("event_count", event_tags),
            ("note_count", note_tags),
            ("todo_count", todo_tags),
        ):
            rows = self.session.execute(
                select(table.c.tag_id, func.count())
                .join(Tag, Tag.id == table.c.tag_id)
                .where(Tag.user_id == self.user_id)
                .group_by(table.c.tag_id)
            ).all()
            for tag_id, count in rows:
                counts.setdefault(tag_id, {})[key] = count
        return counts

    def get(self, tag_id: int) -> Tag:
        return self._owned(Tag, tag_id, "Tag not found")

    def _ensure_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Tag.id).where(Tag.user_id == self.user_id, Tag.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Tag.id != exclude_id)
        if self.session.scalar(stmt):
            raise ConflictError("A tag with this name already exists")

    def _commit_name(self) -> None:
        # a concurrent insert can still slip past _ensure_unique
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("A tag with this name already exists") from exc

    def create(self, data: TagIn) -> Tag:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Tag name cannot be empty")
        self._ensure_unique(clean_name)
        tag = Tag(user_id=self.user_id, name=clean_name, color=data.color or "#3b82f6")
        self.session.add(tag)
        self._commit_name()
        self.session.refresh(tag)
        return tag

    def update(self, tag_id: int, data: TagUpdate) -> Tag:
        tag = self.get(tag_id)
        if data.name is not None:
            clean_name = data.name.strip()
            if not clean_name:
                raise ValueError("Tag name cannot be empty")
            self._ensure_unique(clean_name, exclude_id=tag.id)
            tag.name = clean_name
        if data.color is not None:
            tag.color = data.color
        self._commit_name()
        self.session.refresh(tag)
        return tag

    def delete(self, tag_id: int) -> None:
        tag = self.get(tag_id)
        self.session.delete(tag)
        self._commit()


class EventService(OwnedService):
    def list(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[Event]:
        stmt = (
            select(Event)
            .options(selectinload(Event.tags))
            .where(Event.user_id == self.user_id)
            .order_by(Event.start_time, Event.id)
        )
        if start is not None:
            stmt = stmt.where(Event.end_time > to_local_naive(start))
        if end is not None:
            stmt = stmt.where(Event.start_time < to_local_naive(end))
        return list(self.session.scalars(stmt).all())

    def get(self, event_id: int) -> Event:
        return self._owned(Event, event_id, "Event not found")

    def create(self, data: EventIn) -> list[Event]:
        """Create one event, or the whole series for a recurring template.

        The series is written in a single commit, so either every occurrence
        is stored or none is.
        """
        start = to_local_naive(data.start_time)
        end = to_local_naive(data.end_time)
        if end <= start:
            raise ValueError("End time must be after start time")
        if data.is_recurring and data.recurrence_kind is None:
            raise ValueError("Recurrence kind is required for recurring events")
        tags = self._tags(data.tag_ids)

        if not data.is_recurring:
            event = Event(
                user_id=self.user_id,
                title=data.title,
                description=data.description,
                start_time=start,
                end_time=end,
                location=data.location,
                is_recurring=False,
                recurrence_kind=None,
                recurrence_end=None,
                tags=list(tags),
            )
            self.session.add(event)
            self._commit()
            self.session.refresh(event)
            return [event]

        recurrence_end = recurrence_end_instant(data.recurrence_end)
        if recurrence_end is not None and recurrence_end < start:
            raise ValueError("Recurrence end must not be before the first occurrence")
        occurrences = expand_occurrences(start, end, data.recurrence_kind, recurrence_end)
        events = [
            Event(
                user_id=self.user_id,
                title=data.title,
                description=data.description,
                start_time=occurrence.start,
                end_time=occurrence.end,
                location=data.location,
                is_recurring=True,
                recurrence_kind=data.recurrence_kind,
                recurrence_end=recurrence_end,
                tags=list(tags),
            )
            for occurrence in occurrences
        ]
        self.session.add_all(events)
        self._commit()
        logger.info(
            f"event_series_created: kind={data.recurrence_kind.value} "
            f"occurrences={len(events)}"
        )
        return events

    def update(self, event_id: int, data: EventUpdate) -> Event:
        event = self.get(event_id)
        fields = data.model_dump(exclude_unset=True)

        start = to_local_naive(fields.get("start_time") or event.start_time)
        end = to_local_naive(fields.get("end_time") or event.end_time)
        if end <= start:
            raise ValueError("End time must be after start time")

        is_recurring = fields.get("is_recurring", event.is_recurring)
        if is_recurring is None:
            is_recurring = event.is_recurring
        kind = fields.get("recurrence_kind", event.recurrence_kind)
        if is_recurring and kind is None:
            raise ValueError("Recurrence kind is required for recurring events")

        if "tag_ids" in fields:
            event.tags = self._tags(data.tag_ids or [])
        _apply(
            event,
            data,
            exclude={
                "tag_ids",
                "start_time",
                "end_time",
                "is_recurring",
                "recurrence_kind",
                "recurrence_end",
            },
        )
        event.start_time = start
        event.end_time = end
        event.is_recurring = is_recurring
        if is_recurring:
            event.recurrence_kind = kind
            if "recurrence_end" in fields:
                event.recurrence_end = recurrence_end_instant(data.recurrence_end)
        else:
            event.recurrence_kind = None
            event.recurrence_end = None
        self._commit()
        self.session.refresh(event)
        return event

    def delete(self, event_id: int) -> None:
        event = self.get(event_id)
        self.session.delete(event)
        self._commit()


class NoteService(OwnedService):
    def list(self) -> list[Note]:
        stmt = (
            select(Note)
            .options(selectinload(Note.tags))
            .where(Note.user_id == self.user_id)
            .order_by(Note.updated_at.desc(), Note.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, note_id: int) -> Note:
        return self._owned(Note, note_id, "Note not found")

    def create(self, data: NoteIn) -> Note:
        note = Note(
            user_id=self.user_id,
            title=data.title,
            content=data.content,
            type=data.type,
            tags=self._tags(data.tag_ids),
        )
        self.session.add(note)
        self._commit()
        self.session.refresh(note)
        return note

    def update(self, note_id: int, data: NoteUpdate) -> Note:
        note = self.get(note_id)
        if data.tag_ids is not None:
            note.tags = self._tags(data.tag_ids)
        _apply(note, data, exclude={"tag_ids"})
        self._commit()
        self.session.refresh(note)
        return note

    def delete(self, note_id: int) -> None:
        note = self.get(note_id)
        self.session.delete(note)
        self._commit()


class TodoService(OwnedService):
    def list(self) -> list[Todo]:
        stmt = (
            select(Todo)
            .options(selectinload(Todo.tags), selectinload(Todo.subtasks))
            .where(Todo.user_id == self.user_id)
            .order_by(Todo.completed, Todo.due_date.is_(None), Todo.due_date, Todo.id)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, todo_id: int) -> Todo:
        return self._owned(Todo, todo_id, "Todo not found")

    def create(self, data: TodoIn) -> Todo:
        completed = data.completed or data.status == TodoStatus.done
        todo = Todo(
            user_id=self.user_id,
            title=data.title,
            description=data.description,
            completed=completed,
            priority=data.priority,
            status=data.status,
            due_date=to_local_naive(data.due_date) if data.due_date else None,
            tags=self._tags(data.tag_ids),
            subtasks=[
                Subtask(title=item.title, completed=item.completed, order=index)
                for index, item in enumerate(data.subtasks)
            ],
        )
        self.session.add(todo)
        self._commit()
        self.session.refresh(todo)
        return todo

    def update(self, todo_id: int, data: TodoUpdate) -> Todo:
        todo = self.get(todo_id)
        fields = data.model_dump(exclude_unset=True)

        if "tag_ids" in fields:
            todo.tags = self._tags(data.tag_ids or [])
        _apply(
            todo, data, exclude={"tag_ids", "due_date", "status", "completed", "subtasks"}
        )
        if "due_date" in fields:
            todo.due_date = to_local_naive(data.due_date) if data.due_date else None
        if data.status is not None:
            todo.status = data.status
        if data.completed is not None:
            todo.completed = data.completed
        elif data.status is not None:
            todo.completed = data.status == TodoStatus.done

        if data.subtasks is not None:
            todo.subtasks.clear()
            self.session.flush()
            todo.subtasks.extend(
                Subtask(title=item.title, completed=item.completed, order=index)
                for index, item in enumerate(data.subtasks)
            )
        self._commit()
        self.session.refresh(todo)
        return todo

    def delete(self, todo_id: int) -> None:
        todo = self.get(todo_id)
        self.session.delete(todo)
        self._commit()

    def _subtask(self, subtask_id: int) -> Subtask:
        subtask = self.session.get(Subtask, subtask_id)
        if not subtask or subtask.todo.user_id != self.user_id:
            raise NotFoundError("Subtask not found")
        return subtask

    def update_subtask(self, subtask_id: int, data: SubtaskUpdate) -> Subtask:
        subtask = self._subtask(subtask_id)
        _apply(subtask, data)
        self._commit()
        self.session.refresh(subtask)
        return subtask

    def delete_subtask(self, subtask_id: int) -> None:
        subtask = self._subtask(subtask_id)
        self.session.delete(subtask)
        self._commit()


class RecordService(OwnedService):
    """Create/read/update/delete for flat owner-scoped finance records."""

    model: type = None
    label = "Record"
    ordering: tuple = ()
    has_category = False

    def list(self) -> list:
        stmt = select(self.model).where(self.model.user_id == self.user_id)
        return list(self.session.scalars(stmt.order_by(*self.ordering)).all())

    def get(self, obj_id: int):
        return self._owned(self.model, obj_id, f"{self.label} not found")

    def create(self, data: BaseModel):
        if self.has_category:
            self._check_category(data.category_id)
        obj = self.model(user_id=self.user_id, **data.model_dump())
        self.session.add(obj)
        self._commit()
        self.session.refresh(obj)
        return obj

    def update(self, obj_id: int, data: BaseModel):
        obj = self.get(obj_id)
        if self.has_category and "category_id" in data.model_fields_set:
            self._check_category(data.category_id)
        _apply(obj, data)
        self._commit()
        self.session.refresh(obj)
        return obj

    def delete(self, obj_id: int) -> None:
        obj = self.get(obj_id)
        self.session.delete(obj)
        self._commit()


class FinanceCategoryService(RecordService):
    model = FinanceCategory
    label = "Category"
    ordering = (FinanceCategory.name,)

    def delete(self, obj_id: int) -> None:
        category = self.get(obj_id)
        for model in (Expense, Budget, InstallmentPlan):
            self.session.execute(
                update(model)
                .where(model.user_id == self.user_id, model.category_id == category.id)
                .values(category_id=None)
            )
        self.session.delete(category)
        self._commit()


class ExpenseService(RecordService):
    model = Expense
    label = "Expense"
    ordering = (Expense.date.desc(), Expense.id.desc())
    has_category = True

    def list_for_period(self, period: Optional[Period] = None) -> list[Expense]:
        stmt = select(Expense).where(Expense.user_id == self.user_id)
        if period is not None:
            stmt = stmt.where(Expense.date >= period.start, Expense.date <= period.end)
        return list(self.session.scalars(stmt.order_by(*self.ordering)).all())

    def delete(self, obj_id: int) -> None:
        expense = self.get(obj_id)
        linked = self.session.scalar(
            select(InstallmentPayment.id).where(
                InstallmentPayment.expense_id == expense.id
            )
        )
        if linked:
            raise ConflictError("Expense is linked to an installment payment")
        self.session.delete(expense)
        self._commit()


class IncomeService(RecordService):
    model = Income
    label = "Income"
    ordering = (Income.date.desc(), Income.id.desc())


class InvestmentService(RecordService):
    model = Investment
    label = "Investment"
    ordering = (Investment.date.desc(), Investment.id.desc())


class SavingsGoalService(RecordService):
    model = SavingsGoal
    label = "Savings goal"
    ordering = (SavingsGoal.created_at.desc(), SavingsGoal.id.desc())


class BudgetService(OwnedService):
    def list(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, budget_id: int) -> Budget:
        return self._owned(Budget, budget_id, "Budget not found")

    def create(self, data: BudgetIn) -> Budget:
        self._check_category(data.category_id)
        budget = Budget(user_id=self.user_id, **data.model_dump())
        self.session.add(budget)
        self._commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = self.get(budget_id)
        fields = data.model_dump(exclude_unset=True)
        if "category_id" in fields:
            self._check_category(fields["category_id"])
        start = fields.get("start_date") or budget.start_date
        end = fields["end_date"] if "end_date" in fields else budget.end_date
        if end is not None and end < start:
            raise ValueError("End date must not be before start date")
        _apply(budget, data)
        budget.start_date = start
        self._commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self._commit()

    def progress(self, *, today: Optional[date] = None) -> list[dict[str, object]]:
        today = today or local_today()
        budgets = self.list()
        expenses = self.session.scalars(
            select(Expense).where(Expense.user_id == self.user_id)
        ).all()
        result = []
        for budget in budgets:
            window = budget_window(budget, today=today)
            spent = spent_cents(budget, expenses, today=today)
            result.append(
                {
                    "budget": budget,
                    "window": window,
                    "spent_cents": spent,
                    "remaining_cents": budget.amount_cents - spent,
                }
            )
        return result


class InstallmentPlanService(OwnedService):
    def list(self) -> list[InstallmentPlan]:
        stmt = (
            select(InstallmentPlan)
            .options(selectinload(InstallmentPlan.payments))
            .where(InstallmentPlan.user_id == self.user_id)
            .order_by(InstallmentPlan.created_at.desc(), InstallmentPlan.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, plan_id: int) -> InstallmentPlan:
        return self._owned(InstallmentPlan, plan_id, "Installment plan not found")

    def create(self, data: InstallmentPlanIn) -> InstallmentPlan:
        self._check_category(data.category_id)
        schedule = payment_schedule(
            data.first_payment_date, data.total_amount_cents, data.number_of_payments
        )
        plan = InstallmentPlan(
            user_id=self.user_id,
            description=data.description,
            total_amount_cents=data.total_amount_cents,
            number_of_payments=data.number_of_payments,
            amount_per_payment_cents=schedule[0].amount_cents,
            day_of_month=data.day_of_month,
            first_payment_date=data.first_payment_date,
            category_id=data.category_id,
            status=PlanStatus.active,
            payments=[
                InstallmentPayment(
                    amount_cents=item.amount_cents,
                    due_date=item.due_date,
                    payment_number=item.payment_number,
                    is_paid=False,
                )
                for item in schedule
            ],
        )
        self.session.add(plan)
        self._commit()
        self.session.refresh(plan)
        logger.info(
            f"installment_plan_created: id={plan.id} payments={plan.number_of_payments}"
        )
        return plan

    def update_status(self, plan_id: int, status: PlanStatus) -> InstallmentPlan:
        plan = self.get(plan_id)
        plan.status = status
        self._commit()
        self.session.refresh(plan)
        return plan

    def delete(self, plan_id: int) -> None:
        plan = self.get(plan_id)
        if any(payment.is_paid for payment in plan.payments):
            raise ConflictError("Cannot delete a plan with settled payments")
        self.session.delete(plan)
        self._commit()

    def settle_payment(self, payment_id: int) -> tuple[InstallmentPayment, Expense]:
        """Record a payment as paid and book it as an expense.

        Expense creation, the paid flag and the plan completion check share
        one transaction. The paid flag is flipped with a conditional UPDATE so
        that only one of two racing settlements can succeed.
        """
        payment = self.session.get(InstallmentPayment, payment_id)
        if not payment or payment.plan.user_id != self.user_id:
            raise NotFoundError("Payment not found")
        if payment.is_paid:
            raise ConflictError("Payment already settled")

        plan = payment.plan
        now = local_now()
        try:
            expense = Expense(
                user_id=self.user_id,
                description=settlement_description(
                    plan.description, payment.payment_number, plan.number_of_payments
                ),
                amount_cents=payment.amount_cents,
                date=now.date(),
                category_id=plan.category_id,
            )
            self.session.add(expense)
            self.session.flush()

            result = self.session.execute(
                update(InstallmentPayment)
                .where(
                    InstallmentPayment.id == payment.id,
                    InstallmentPayment.is_paid.is_(False),
                )
                .values(is_paid=True, paid_date=now, expense_id=expense.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError("Payment already settled")
            self.session.refresh(payment)

            unpaid = self.session.scalar(
                select(func.count())
                .select_from(InstallmentPayment)
                .where(
                    InstallmentPayment.plan_id == plan.id,
                    InstallmentPayment.is_paid.is_(False),
                )
            )
            if unpaid == 0:
                plan.status = PlanStatus.completed
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(payment)
        self.session.refresh(expense)
        logger.info(
            f"installment_settled: plan={plan.id} payment={payment.payment_number}/"
            f"{plan.number_of_payments} expense={expense.id}"
        )
        if unpaid == 0:
            logger.info(f"installment_plan_completed: id={plan.id}")
        return payment, expense
