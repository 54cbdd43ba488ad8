from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Budget, BudgetPeriod, Expense
from periods import budget_window, resolve_period, spent_cents
from schemas import BudgetIn, BudgetUpdate, ExpenseIn, FinanceCategoryIn
from services import BudgetService, ExpenseService, FinanceCategoryService

TODAY = date(2024, 3, 14)


def _budget(period: BudgetPeriod, **kwargs) -> Budget:
    return Budget(
        user_id=1,
        name="Test",
        amount_cents=50000,
        period=period,
        start_date=kwargs.pop("start_date", date(2024, 1, 1)),
        **kwargs,
    )


def _expense(day: date, amount: int, category_id=None) -> Expense:
    return Expense(
        user_id=1,
        description="x",
        amount_cents=amount,
        date=day,
        category_id=category_id,
    )


def test_monthly_window_excludes_adjacent_months():
    budget = _budget(BudgetPeriod.monthly)
    expenses = [
        _expense(date(2024, 2, 29), 1000),
        _expense(date(2024, 3, 1), 200),
        _expense(date(2024, 3, 31), 300),
        _expense(date(2024, 4, 1), 4000),
    ]

    window = budget_window(budget, today=TODAY)

    assert (window.start, window.end) == (date(2024, 3, 1), date(2024, 3, 31))
    assert spent_cents(budget, expenses, today=TODAY) == 500


def test_weekly_window_is_iso_week():
    budget = _budget(BudgetPeriod.weekly)
    expenses = [
        _expense(date(2024, 3, 10), 100),
        _expense(date(2024, 3, 11), 200),
        _expense(date(2024, 3, 17), 300),
        _expense(date(2024, 3, 18), 400),
    ]

    window = budget_window(budget, today=TODAY)

    assert (window.start, window.end) == (date(2024, 3, 11), date(2024, 3, 17))
    assert spent_cents(budget, expenses, today=TODAY) == 500


def test_yearly_window_is_calendar_year():
    budget = _budget(BudgetPeriod.yearly)
    expenses = [
        _expense(date(2023, 12, 31), 100),
        _expense(date(2024, 1, 1), 200),
        _expense(date(2024, 12, 31), 300),
    ]

    assert spent_cents(budget, expenses, today=TODAY) == 500


def test_custom_window_without_end_runs_until_today():
    budget = _budget(BudgetPeriod.custom, start_date=date(2024, 2, 20))
    expenses = [
        _expense(date(2024, 2, 19), 100),
        _expense(date(2024, 2, 20), 200),
        _expense(date(2024, 3, 14), 300),
        _expense(date(2024, 3, 15), 400),
    ]

    window = budget_window(budget, today=TODAY)

    assert (window.start, window.end) == (date(2024, 2, 20), TODAY)
    assert spent_cents(budget, expenses, today=TODAY) == 500


def test_custom_window_with_end_date():
    budget = _budget(
        BudgetPeriod.custom, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31)
    )
    expenses = [_expense(date(2024, 1, 31), 700), _expense(date(2024, 2, 1), 50)]

    assert spent_cents(budget, expenses, today=TODAY) == 700


def test_category_filter_only_counts_matching_expenses():
    budget = _budget(BudgetPeriod.monthly, category_id=7)
    expenses = [
        _expense(date(2024, 3, 5), 100, category_id=7),
        _expense(date(2024, 3, 6), 200, category_id=8),
        _expense(date(2024, 3, 7), 400),
    ]

    assert spent_cents(budget, expenses, today=TODAY) == 100


def test_empty_match_is_zero():
    assert spent_cents(_budget(BudgetPeriod.monthly), [], today=TODAY) == 0


def test_resolve_period_variants():
    assert resolve_period("this_month", None, None, today=TODAY).start == date(
        2024, 3, 1
    )
    last = resolve_period("last_month", None, None, today=TODAY)
    assert (last.start, last.end) == (date(2024, 2, 1), date(2024, 2, 29))
    week = resolve_period("this_week", None, None, today=TODAY)
    assert (week.start, week.end) == (date(2024, 3, 11), date(2024, 3, 17))
    custom = resolve_period("custom", "2024-01-05", "2024-01-10", today=TODAY)
    assert (custom.start, custom.end) == (date(2024, 1, 5), date(2024, 1, 10))


@pytest.mark.parametrize(
    "args",
    [
        ("custom", None, "2024-01-10"),
        ("custom", "2024-02-01", "2024-01-10"),
        ("fortnight", None, None),
    ],
)
def test_resolve_period_rejects_bad_input(args):
    with pytest.raises(ValueError):
        resolve_period(*args, today=TODAY)


def test_budget_progress_reports_spent_and_remaining():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = FinanceCategoryService(session, 1).create(FinanceCategoryIn(name="Food"))
        expenses = ExpenseService(session, 1)
        expenses.create(
            ExpenseIn(
                description="Groceries",
                amount_cents=4500,
                date=date(2024, 3, 2),
                category_id=food.id,
            )
        )
        expenses.create(
            ExpenseIn(description="Cinema", amount_cents=1200, date=date(2024, 3, 3))
        )
        # another user's spending never counts
        ExpenseService(session, 2).create(
            ExpenseIn(description="Other", amount_cents=9999, date=date(2024, 3, 3))
        )
        BudgetService(session, 1).create(
            BudgetIn(
                name="Food",
                amount_cents=20000,
                period=BudgetPeriod.monthly,
                start_date=date(2024, 1, 1),
                category_id=food.id,
            )
        )

        [item] = BudgetService(session, 1).progress(today=TODAY)

        assert item["spent_cents"] == 4500
        assert item["remaining_cents"] == 15500
        assert item["window"].start == date(2024, 3, 1)


def test_budget_update_rejects_end_before_start():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetService(session, 1)
        budget = service.create(
            BudgetIn(
                name="Trip",
                amount_cents=100000,
                period=BudgetPeriod.custom,
                start_date=date(2024, 6, 1),
            )
        )

        with pytest.raises(ValueError):
            service.update(budget.id, BudgetUpdate(end_date=date(2024, 5, 1)))

        updated = service.update(budget.id, BudgetUpdate(end_date=date(2024, 6, 30)))
        assert updated.end_date == date(2024, 6, 30)
