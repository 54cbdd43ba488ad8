"""store recurrence end as an instant

Revision ID: 202603011000
Revises: 202602151200
Create Date: 2026-03-01 10:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202603011000"
down_revision = "202602151200"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("events") as batch_op:
        batch_op.alter_column(
            "recurrence_end",
            existing_type=sa.Date(),
            type_=sa.DateTime(),
            existing_nullable=True,
        )
    # stored days keep covering their whole day
    if op.get_bind().dialect.name == "sqlite":
        op.execute(
            "UPDATE events SET recurrence_end = recurrence_end || ' 23:59:59.999999' "
            "WHERE recurrence_end IS NOT NULL AND length(recurrence_end) = 10"
        )
    else:
        op.execute(
            "UPDATE events SET recurrence_end = recurrence_end "
            "+ interval '1 day' - interval '1 microsecond' "
            "WHERE recurrence_end IS NOT NULL "
            "AND recurrence_end = date_trunc('day', recurrence_end)"
        )


def downgrade():
    with op.batch_alter_table("events") as batch_op:
        batch_op.alter_column(
            "recurrence_end",
            existing_type=sa.DateTime(),
            type_=sa.Date(),
            existing_nullable=True,
        )
    if op.get_bind().dialect.name == "sqlite":
        op.execute(
            "UPDATE events SET recurrence_end = substr(recurrence_end, 1, 10) "
            "WHERE recurrence_end IS NOT NULL"
        )
