from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from models import Budget, BudgetPeriod, Expense


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def _month_bounds(today: date) -> tuple[date, date]:
    first = today.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return first, next_month - date.resolution


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    """Resolve a list filter (``?period=...&start=...&end=...``) to a date range."""
    today = today or date.today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), date(9999, 12, 31))
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "this_week":
        monday = today - timedelta(days=today.weekday())
        return Period("this_week", monday, monday + timedelta(days=6))
    if period == "this_year":
        return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    first, last = _month_bounds(today)
    return Period("this_month", first, last)


def budget_window(budget: Budget, *, today: Optional[date] = None) -> Period:
    """Current window of a budget: ISO week, calendar month, calendar year or its own range."""
    today = today or date.today()
    if budget.period == BudgetPeriod.weekly:
        monday = today - timedelta(days=today.weekday())
        return Period(budget.period.value, monday, monday + timedelta(days=6))
    if budget.period == BudgetPeriod.yearly:
        return Period(
            budget.period.value, date(today.year, 1, 1), date(today.year, 12, 31)
        )
    if budget.period == BudgetPeriod.custom:
        return Period(budget.period.value, budget.start_date, budget.end_date or today)
    first, last = _month_bounds(today)
    return Period(BudgetPeriod.monthly.value, first, last)


def spent_cents(
    budget: Budget, expenses: Iterable[Expense], *, today: Optional[date] = None
) -> int:
    window = budget_window(budget, today=today)
    return sum(
        expense.amount_cents
        for expense in expenses
        if window.contains(expense.date)
        and (budget.category_id is None or expense.category_id == budget.category_id)
    )
