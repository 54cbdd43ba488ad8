"""add finance module

Revision ID: 202602151200
Revises: 202602011000
Create Date: 2026-02-15 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202602151200"
down_revision = "202602011000"
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _category_fk():
    return sa.Column(
        "category_id",
        sa.Integer(),
        sa.ForeignKey("finance_categories.id", ondelete="SET NULL"),
    )


def upgrade():
    op.create_table(
        "finance_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=9)),
        sa.Column("icon", sa.String(length=40)),
        *_timestamps(),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        _category_fk(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])

    op.create_table(
        "incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("frequency", sa.String(length=40)),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_incomes_amount_positive"),
    )
    op.create_index("ix_incomes_user_date", "incomes", ["user_id", "date"])

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "type", sa.String(length=40), nullable=False, server_default="savings"
        ),
        *_timestamps(),
    )

    op.create_table(
        "savings_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("deadline", sa.Date()),
        sa.Column("description", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "period",
            sa.Enum("weekly", "monthly", "yearly", "custom", name="budgetperiod"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        _category_fk(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
    )

    op.create_table(
        "installment_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("number_of_payments", sa.Integer(), nullable=False),
        sa.Column("amount_per_payment_cents", sa.Integer(), nullable=False),
        sa.Column("day_of_month", sa.Integer(), nullable=False),
        sa.Column("first_payment_date", sa.Date(), nullable=False),
        _category_fk(),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "cancelled", name="planstatus"),
            nullable=False,
            server_default="active",
        ),
        *_timestamps(),
        sa.CheckConstraint("total_amount_cents > 0", name="ck_plan_total_positive"),
        sa.CheckConstraint(
            "number_of_payments >= 1", name="ck_plan_payments_positive"
        ),
        sa.CheckConstraint(
            "day_of_month BETWEEN 1 AND 31", name="ck_plan_day_of_month_range"
        ),
    )

    op.create_table(
        "installment_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "plan_id",
            sa.Integer(),
            sa.ForeignKey("installment_plans.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("payment_number", sa.Integer(), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paid_date", sa.DateTime()),
        sa.Column("expense_id", sa.Integer(), sa.ForeignKey("expenses.id")),
        *_timestamps(),
        sa.UniqueConstraint(
            "plan_id", "payment_number", name="uq_payment_plan_number"
        ),
    )
    op.create_index(
        "ix_installment_payments_plan", "installment_payments", ["plan_id"]
    )


def downgrade():
    op.drop_index("ix_installment_payments_plan", table_name="installment_payments")
    op.drop_table("installment_payments")
    op.drop_table("installment_plans")
    op.drop_table("budgets")
    op.drop_table("savings_goals")
    op.drop_table("investments")
    op.drop_index("ix_incomes_user_date", table_name="incomes")
    op.drop_table("incomes")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("finance_categories")
