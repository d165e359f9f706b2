from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class IncomeType(str, Enum):
    salary = "salary"
    borrowed = "borrowed"


class ExpenseAction(str, Enum):
    delete = "delete"
    move = "move"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text)
    include_borrowed_in_budget: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[IncomeType] = mapped_column(
        SAEnum(IncomeType), nullable=False, default=IncomeType.salary
    )
    source: Mapped[Optional[str]] = mapped_column(String(120))
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_incomes_user_created", "user_id", "created_at"),
        CheckConstraint("amount_paise > 0", name="ck_incomes_amount_positive"),
    )


class BudgetCategory(Base, TimestampMixin):
    __tablename__ = "budget_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Not a foreign key: the store does not guarantee existence or acyclicity.
    parent_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)

    __table_args__ = (
        Index("ix_budget_categories_user_created", "user_id", "created_at"),
        CheckConstraint(
            "amount_paise >= 0", name="ck_budget_categories_amount_non_negative"
        ),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_expenses_user_created", "user_id", "created_at"),
        Index("ix_expenses_user_category", "user_id", "category_id"),
        CheckConstraint("amount_paise > 0", name="ck_expenses_amount_positive"),
    )
