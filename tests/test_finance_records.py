from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import BudgetPeriod
from schemas import (
    BudgetIn,
    ExpenseIn,
    ExpenseUpdate,
    FinanceCategoryIn,
    IncomeIn,
    SavingsGoalIn,
    SavingsGoalUpdate,
)
from services import (
    BudgetService,
    ExpenseService,
    FinanceCategoryService,
    IncomeService,
    NotFoundError,
    SavingsGoalService,
)


def test_deleting_category_uncategorises_records():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        category = FinanceCategoryService(session, 1).create(
            FinanceCategoryIn(name="Food", color="#22c55e", icon="utensils")
        )
        expense = ExpenseService(session, 1).create(
            ExpenseIn(
                description="Bread",
                amount_cents=300,
                date=date(2024, 4, 2),
                category_id=category.id,
            )
        )
        budget = BudgetService(session, 1).create(
            BudgetIn(
                name="Food",
                amount_cents=30000,
                period=BudgetPeriod.monthly,
                start_date=date(2024, 1, 1),
                category_id=category.id,
            )
        )

        FinanceCategoryService(session, 1).delete(category.id)
        session.expire_all()

        assert ExpenseService(session, 1).get(expense.id).category_id is None
        assert BudgetService(session, 1).get(budget.id).category_id is None
        assert FinanceCategoryService(session, 1).list() == []


def test_expense_update_checks_category_owner():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        foreign = FinanceCategoryService(session, 2).create(
            FinanceCategoryIn(name="Theirs")
        )
        expense = ExpenseService(session, 1).create(
            ExpenseIn(description="Taxi", amount_cents=1800, date=date(2024, 4, 3))
        )

        with pytest.raises(NotFoundError):
            ExpenseService(session, 1).update(
                expense.id, ExpenseUpdate(category_id=foreign.id)
            )

        updated = ExpenseService(session, 1).update(
            expense.id, ExpenseUpdate(amount_cents=2000, description=None)
        )
        assert updated.amount_cents == 2000
        assert updated.description == "Taxi"


def test_income_and_savings_goals_are_owner_scoped():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        income = IncomeService(session, 1).create(
            IncomeIn(
                description="Salary",
                amount_cents=250000,
                date=date(2024, 4, 1),
                is_recurring=True,
                frequency="monthly",
            )
        )
        goal = SavingsGoalService(session, 1).create(
            SavingsGoalIn(name="Holiday", target_amount_cents=150000)
        )

        with pytest.raises(NotFoundError):
            IncomeService(session, 2).delete(income.id)
        with pytest.raises(NotFoundError):
            SavingsGoalService(session, 2).get(goal.id)

        progressed = SavingsGoalService(session, 1).update(
            goal.id, SavingsGoalUpdate(current_amount_cents=50000)
        )
        assert progressed.current_amount_cents == 50000
        assert progressed.target_amount_cents == 150000
        assert [i.description for i in IncomeService(session, 1).list()] == ["Salary"]
