"""initial budget schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100)),
        sa.Column("email", sa.String(length=200)),
        sa.Column("profile_image_url", sa.Text()),
        sa.Column(
            "include_borrowed_in_budget",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        *_timestamps(),
    )

    op.create_table(
        "incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount_paise", sa.Integer(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("salary", "borrowed", name="incometype"),
            nullable=False,
            server_default="salary",
        ),
        sa.Column("source", sa.String(length=120)),
        sa.Column("due_date", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint("amount_paise > 0", name="ck_incomes_amount_positive"),
    )
    op.create_index("ix_incomes_user_created", "incomes", ["user_id", "created_at"])

    # parent_id / category_id carry no foreign keys: deletes are not cascaded by
    # the store and the application tolerates dangling references.
    op.create_table(
        "budget_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("amount_paise", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("parent_id", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_paise >= 0", name="ck_budget_categories_amount_non_negative"
        ),
    )
    op.create_index(
        "ix_budget_categories_parent_id", "budget_categories", ["parent_id"]
    )
    op.create_index(
        "ix_budget_categories_user_created",
        "budget_categories",
        ["user_id", "created_at"],
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("amount_paise", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("amount_paise > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_created", "expenses", ["user_id", "created_at"])
    op.create_index(
        "ix_expenses_user_category", "expenses", ["user_id", "category_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_expenses_user_category", table_name="expenses")
    op.drop_index("ix_expenses_user_created", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_budget_categories_user_created", table_name="budget_categories")
    op.drop_index("ix_budget_categories_parent_id", table_name="budget_categories")
    op.drop_table("budget_categories")
    op.drop_index("ix_incomes_user_created", table_name="incomes")
    op.drop_table("incomes")
    op.drop_table("users")
