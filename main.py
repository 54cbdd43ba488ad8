import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from auth import build_resolver, issue_token
from database import get_db
from models import User
from periods import Period, resolve_period
from recurrence import local_today
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetProgressOut,
    BudgetUpdate,
    EventIn,
    EventOut,
    EventUpdate,
    ExpenseIn,
    ExpenseOut,
    ExpenseUpdate,
    FinanceCategoryIn,
    FinanceCategoryOut,
    FinanceCategoryUpdate,
    IncomeIn,
    IncomeOut,
    IncomeUpdate,
    InstallmentPlanIn,
    InstallmentPlanOut,
    InstallmentPlanUpdate,
    InvestmentIn,
    InvestmentOut,
    InvestmentUpdate,
    NoteIn,
    NoteOut,
    NoteUpdate,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalUpdate,
    SettlementOut,
    SubtaskOut,
    SubtaskUpdate,
    TagIn,
    TagOut,
    TagUpdate,
    TagUsageOut,
    TodoIn,
    TodoOut,
    TodoUpdate,
    UserOut,
    UserSettingsOut,
    UserSettingsUpdate,
)
from services import (
    BudgetService,
    ConflictError,
    EventService,
    ExpenseService,
    FinanceCategoryService,
    IncomeService,
    InstallmentPlanService,
    InvestmentService,
    NoteService,
    NotFoundError,
    SavingsGoalService,
    SettingsService,
    SignInRejected,
    TagService,
    TodoService,
    UserService,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except ImportError:
        return "unknown"
    try:
        with open(Path(__file__).resolve().parent / "pyproject.toml", "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()

app = FastAPI(title="Daybook", version=APP_VERSION)
app.state.identity_resolver = build_resolver()


def upgrade_schema() -> None:
    from alembic import command
    from alembic.config import Config

    root = Path(__file__).resolve().parent
    cfg = Config(str(root / "alembic.ini"))
    cfg.set_main_option("script_location", str(root / "alembic"))
    command.upgrade(cfg, "head")


@app.on_event("startup")
def startup_event():
    upgrade_schema()
    logger.info(f"Daybook {APP_VERSION} ready")


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ValueError)
def validation_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    principal = request.app.state.identity_resolver.resolve(request)
    if not principal:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return UserService(db).sign_in(principal)
    except SignInRejected as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc


def period_from_request(request: Request) -> Optional[Period]:
    period_slug = request.query_params.get("period")
    if not period_slug:
        return None
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def no_content() -> Response:
    return Response(status_code=204)


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    db.execute(select(1))
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/me", response_model=UserOut)
def me(user: User = Depends(current_user)):
    return user


# Settings


@app.get("/api/settings", response_model=UserSettingsOut)
def get_settings_endpoint(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return SettingsService(db, user.id).get()


@app.patch("/api/settings", response_model=UserSettingsOut)
def update_settings_endpoint(
    data: UserSettingsUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return SettingsService(db, user.id).update(data)


# Tags


@app.get("/api/tags", response_model=list[TagUsageOut])
def list_tags(user: User = Depends(current_user), db: Session = Depends(get_db)):
    service = TagService(db, user.id)
    counts = service.usage_counts()
    return [
        TagUsageOut(
            id=tag.id,
            name=tag.name,
            color=tag.color,
            **counts.get(tag.id, {}),
        )
        for tag in service.list_all()
    ]


@app.post("/api/tags", response_model=TagOut, status_code=201)
def create_tag(
    data: TagIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TagService(db, user.id).create(data)


@app.get("/api/tags/{tag_id}", response_model=TagOut)
def get_tag(
    tag_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TagService(db, user.id).get(tag_id)


@app.patch("/api/tags/{tag_id}", response_model=TagOut)
def update_tag(
    tag_id: int,
    data: TagUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TagService(db, user.id).update(tag_id, data)


@app.delete("/api/tags/{tag_id}", status_code=204)
def delete_tag(
    tag_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    TagService(db, user.id).delete(tag_id)
    return no_content()


# Events


@app.get("/api/events", response_model=list[EventOut])
def list_events(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return EventService(db, user.id).list(start=start, end=end)


@app.post(
    "/api/events",
    response_model=Union[list[EventOut], EventOut],
    status_code=201,
)
def create_event(
    data: EventIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    events = EventService(db, user.id).create(data)
    if data.is_recurring:
        return events
    return events[0]


@app.get("/api/events/{event_id}", response_model=EventOut)
def get_event(
    event_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return EventService(db, user.id).get(event_id)


@app.patch("/api/events/{event_id}", response_model=EventOut)
def update_event(
    event_id: int,
    data: EventUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return EventService(db, user.id).update(event_id, data)


@app.delete("/api/events/{event_id}", status_code=204)
def delete_event(
    event_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    EventService(db, user.id).delete(event_id)
    return no_content()


# Notes


@app.get("/api/notes", response_model=list[NoteOut])
def list_notes(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return NoteService(db, user.id).list()


@app.post("/api/notes", response_model=NoteOut, status_code=201)
def create_note(
    data: NoteIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return NoteService(db, user.id).create(data)


@app.get("/api/notes/{note_id}", response_model=NoteOut)
def get_note(
    note_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return NoteService(db, user.id).get(note_id)


@app.patch("/api/notes/{note_id}", response_model=NoteOut)
def update_note(
    note_id: int,
    data: NoteUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return NoteService(db, user.id).update(note_id, data)


@app.delete("/api/notes/{note_id}", status_code=204)
def delete_note(
    note_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    NoteService(db, user.id).delete(note_id)
    return no_content()


# Todos


@app.get("/api/todos", response_model=list[TodoOut])
def list_todos(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return TodoService(db, user.id).list()


@app.post("/api/todos", response_model=TodoOut, status_code=201)
def create_todo(
    data: TodoIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TodoService(db, user.id).create(data)


@app.get("/api/todos/{todo_id}", response_model=TodoOut)
def get_todo(
    todo_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return TodoService(db, user.id).get(todo_id)


@app.patch("/api/todos/{todo_id}", response_model=TodoOut)
def update_todo(
    todo_id: int,
    data: TodoUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TodoService(db, user.id).update(todo_id, data)


@app.delete("/api/todos/{todo_id}", status_code=204)
def delete_todo(
    todo_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    TodoService(db, user.id).delete(todo_id)
    return no_content()


@app.patch("/api/subtasks/{subtask_id}", response_model=SubtaskOut)
def update_subtask(
    subtask_id: int,
    data: SubtaskUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return TodoService(db, user.id).update_subtask(subtask_id, data)


@app.delete("/api/subtasks/{subtask_id}", status_code=204)
def delete_subtask(
    subtask_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    TodoService(db, user.id).delete_subtask(subtask_id)
    return no_content()


# Finance records


@app.get("/api/finance-categories", response_model=list[FinanceCategoryOut])
def list_categories(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return FinanceCategoryService(db, user.id).list()


@app.post("/api/finance-categories", response_model=FinanceCategoryOut, status_code=201)
def create_category(
    data: FinanceCategoryIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return FinanceCategoryService(db, user.id).create(data)


@app.get("/api/finance-categories/{category_id}", response_model=FinanceCategoryOut)
def get_category(
    category_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return FinanceCategoryService(db, user.id).get(category_id)


@app.patch("/api/finance-categories/{category_id}", response_model=FinanceCategoryOut)
def update_category(
    category_id: int,
    data: FinanceCategoryUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return FinanceCategoryService(db, user.id).update(category_id, data)


@app.delete("/api/finance-categories/{category_id}", status_code=204)
def delete_category(
    category_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    FinanceCategoryService(db, user.id).delete(category_id)
    return no_content()


@app.get("/api/expenses", response_model=list[ExpenseOut])
def list_expenses(
    request: Request, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    period = period_from_request(request)
    return ExpenseService(db, user.id).list_for_period(period)


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return ExpenseService(db, user.id).create(data)


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return ExpenseService(db, user.id).get(expense_id)


@app.patch("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return ExpenseService(db, user.id).update(expense_id, data)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    ExpenseService(db, user.id).delete(expense_id)
    return no_content()


@app.get("/api/incomes", response_model=list[IncomeOut])
def list_incomes(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return IncomeService(db, user.id).list()


@app.post("/api/incomes", response_model=IncomeOut, status_code=201)
def create_income(
    data: IncomeIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return IncomeService(db, user.id).create(data)


@app.get("/api/incomes/{income_id}", response_model=IncomeOut)
def get_income(
    income_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return IncomeService(db, user.id).get(income_id)


@app.patch("/api/incomes/{income_id}", response_model=IncomeOut)
def update_income(
    income_id: int,
    data: IncomeUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return IncomeService(db, user.id).update(income_id, data)


@app.delete("/api/incomes/{income_id}", status_code=204)
def delete_income(
    income_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    IncomeService(db, user.id).delete(income_id)
    return no_content()


@app.get("/api/investments", response_model=list[InvestmentOut])
def list_investments(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return InvestmentService(db, user.id).list()


@app.post("/api/investments", response_model=InvestmentOut, status_code=201)
def create_investment(
    data: InvestmentIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return InvestmentService(db, user.id).create(data)


@app.get("/api/investments/{investment_id}", response_model=InvestmentOut)
def get_investment(
    investment_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return InvestmentService(db, user.id).get(investment_id)


@app.patch("/api/investments/{investment_id}", response_model=InvestmentOut)
def update_investment(
    investment_id: int,
    data: InvestmentUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return InvestmentService(db, user.id).update(investment_id, data)


@app.delete("/api/investments/{investment_id}", status_code=204)
def delete_investment(
    investment_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    InvestmentService(db, user.id).delete(investment_id)
    return no_content()


@app.get("/api/savings-goals", response_model=list[SavingsGoalOut])
def list_savings_goals(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return SavingsGoalService(db, user.id).list()


@app.post("/api/savings-goals", response_model=SavingsGoalOut, status_code=201)
def create_savings_goal(
    data: SavingsGoalIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return SavingsGoalService(db, user.id).create(data)


@app.get("/api/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def get_savings_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return SavingsGoalService(db, user.id).get(goal_id)


@app.patch("/api/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def update_savings_goal(
    goal_id: int,
    data: SavingsGoalUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return SavingsGoalService(db, user.id).update(goal_id, data)


@app.delete("/api/savings-goals/{goal_id}", status_code=204)
def delete_savings_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    SavingsGoalService(db, user.id).delete(goal_id)
    return no_content()


# Budgets


@app.get("/api/budgets", response_model=list[BudgetProgressOut])
def list_budgets(user: User = Depends(current_user), db: Session = Depends(get_db)):
    items = BudgetService(db, user.id).progress()
    return [
        BudgetProgressOut(
            **BudgetOut.model_validate(item["budget"]).model_dump(),
            window_start=item["window"].start,
            window_end=item["window"].end,
            spent_cents=item["spent_cents"],
            remaining_cents=item["remaining_cents"],
        )
        for item in items
    ]


@app.post("/api/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    data: BudgetIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return BudgetService(db, user.id).create(data)


@app.get("/api/budgets/{budget_id}", response_model=BudgetOut)
def get_budget(
    budget_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return BudgetService(db, user.id).get(budget_id)


@app.patch("/api/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    data: BudgetUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return BudgetService(db, user.id).update(budget_id, data)


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    BudgetService(db, user.id).delete(budget_id)
    return no_content()


# Installment plans


@app.get("/api/installment-plans", response_model=list[InstallmentPlanOut])
def list_installment_plans(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return InstallmentPlanService(db, user.id).list()


@app.post(
    "/api/installment-plans", response_model=InstallmentPlanOut, status_code=201
)
def create_installment_plan(
    data: InstallmentPlanIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return InstallmentPlanService(db, user.id).create(data)


@app.get("/api/installment-plans/{plan_id}", response_model=InstallmentPlanOut)
def get_installment_plan(
    plan_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return InstallmentPlanService(db, user.id).get(plan_id)


@app.patch("/api/installment-plans/{plan_id}", response_model=InstallmentPlanOut)
def update_installment_plan(
    plan_id: int,
    data: InstallmentPlanUpdate,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return InstallmentPlanService(db, user.id).update_status(plan_id, data.status)


@app.delete("/api/installment-plans/{plan_id}", status_code=204)
def delete_installment_plan(
    plan_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    InstallmentPlanService(db, user.id).delete(plan_id)
    return no_content()


@app.post("/api/installment-payments/{payment_id}/pay", response_model=SettlementOut)
def pay_installment(
    payment_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    payment, expense = InstallmentPlanService(db, user.id).settle_payment(payment_id)
    return {"payment": payment, "expense": expense}


def main():
    if len(sys.argv) == 3 and sys.argv[1] == "token":
        print(issue_token(sys.argv[2]))
        return

    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
