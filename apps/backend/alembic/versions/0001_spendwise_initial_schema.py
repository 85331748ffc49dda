"""create user, category and expense tables

Revision ID: 0001_spendwise
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_spendwise"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("report_frequency", sa.Enum("WEEKLY", "MONTHLY", name="report_frequency"), nullable=False),
        sa.Column("report_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("external_id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=16), nullable=True),
        sa.Column("color", sa.String(length=9), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "frequency",
            sa.Enum("DAILY", "WEEKDAYS", "WEEKLY", "MONTHLY", "CUSTOM", name="category_frequency"),
            nullable=False,
        ),
        sa.Column("interval_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("specific_days", sa.JSON(), nullable=False),
        sa.Column("fixed_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("budget_limit", sa.Numeric(18, 2), nullable=True),
        sa.Column("is_email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
        sa.CheckConstraint("interval_count >= 1", name="ck_category_interval_positive"),
    )
    op.create_index("ix_category_user_sort", "category", ["user_id", "sort_order"], unique=False)
    op.create_table(
        "expense",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("is_auto_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["category.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_expense_user_date", "expense", ["user_id", "date"], unique=False)
    op.create_index("ix_expense_category_date", "expense", ["category_id", "date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_expense_category_date", table_name="expense")
    op.drop_index("ix_expense_user_date", table_name="expense")
    op.drop_table("expense")
    op.drop_index("ix_category_user_sort", table_name="category")
    op.drop_table("category")
    op.drop_table("user")
