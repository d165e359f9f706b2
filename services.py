from __future__ import annotations

import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from allocation import validate_category_write
from blobs import ALLOWED_CONTENT_TYPES, LocalBlobStore
from categories import CategoryTree, find_orphans
from config import get_settings
from errors import BudgetError, Err, ErrorKind, not_found, unwrap
from income import (
    IncomeSummary,
    compose_income,
    latest_income,
    recommended_allocations,
    repayment_status,
)
from models import BudgetCategory, Expense, ExpenseAction, Income, IncomeType, User
from money import parse_amount
from periods import today_in
from schemas import (
    CategoryIn,
    ExpenseIn,
    IncomeIn,
    ProfileIn,
    RepaymentIn,
)
from spending import (
    allocation_status,
    category_breakdown,
    category_spending,
    monthly_trend,
    overspent_categories,
    percentage_used,
    spending_summary,
)
from store import RecordStore

logger = logging.getLogger(__name__)

REPAYMENTS_CATEGORY = "Repayments"
DEFAULT_DISPLAY_NAME = "User"


def _today(today: Optional[date]) -> date:
    return today or today_in(get_settings().timezone)


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class UserService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = RecordStore(session, user_id)

    def get(self) -> Optional[User]:
        return self.store.users.get(self.user_id)

    def ensure(self) -> User:
        user = self.get()
        if user:
            return user
        with self.store.transaction():
            user = self.store.users.insert(User(include_borrowed_in_budget=True))
        logger.info(f"user_created: user_id={self.user_id}")
        return user

    def display_name(self) -> str:
        user = self.get()
        return (user.name if user and user.name else None) or DEFAULT_DISPLAY_NAME

    def include_borrowed_in_budget(self) -> bool:
        user = self.get()
        return True if user is None else bool(user.include_borrowed_in_budget)

    def set_include_borrowed(self, include: bool) -> User:
        self.ensure()
        with self.store.transaction():
            self.store.users.update(self.user_id, {"include_borrowed_in_budget": include})
        logger.info(f"include_borrowed_set: user_id={self.user_id} include={include}")
        return self.ensure()

    def update_profile(self, data: ProfileIn) -> User:
        self.ensure()
        values: dict[str, object] = {}
        if data.name is not None:
            clean = data.name.strip()
            if not clean:
                raise BudgetError(ErrorKind.invalid_input, "Name cannot be empty")
            values["name"] = clean
        if data.email is not None:
            values["email"] = data.email.strip() or None
        if values:
            with self.store.transaction():
                self.store.users.update(self.user_id, values)
        return self.ensure()

    def upload_profile_image(
        self,
        data: bytes,
        content_type: str,
        blobs: Optional[LocalBlobStore] = None,
    ) -> str:
        blobs = blobs or LocalBlobStore()
        ext = ALLOWED_CONTENT_TYPES.get(content_type, ".jpg")
        key = f"profile_{self.user_id}_{int(time.time() * 1000)}{ext}"
        url = blobs.upload(key, data, content_type)
        self.ensure()
        with self.store.transaction():
            self.store.users.update(self.user_id, {"profile_image_url": url})
        logger.info(f"profile_image_updated: user_id={self.user_id} key={key}")
        return url


class IncomeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = RecordStore(session, user_id)

    def list_all(self) -> list[Income]:
        return self.store.incomes.list(
            order_by=[Income.created_at.desc(), Income.id.desc()]
        )

    def current(self) -> Optional[Income]:
        return latest_income(self.store.incomes.list())

    def summary(self, include_borrowed: Optional[bool] = None) -> IncomeSummary:
        if include_borrowed is None:
            include_borrowed = UserService(
                self.session, self.user_id
            ).include_borrowed_in_budget()
        return compose_income(self.current(), include_borrowed)

    def record(self, data: IncomeIn) -> Income:
        amount = unwrap(parse_amount(data.amount))
        if data.type == IncomeType.salary and data.due_date is not None:
            raise BudgetError(
                ErrorKind.invalid_input, "Only borrowed income can have a due date"
            )
        source = data.source.strip() if data.source else None
        with self.store.transaction():
            income = self.store.incomes.insert(
                Income(
                    amount_paise=amount,
                    type=data.type,
                    source=source or None,
                    due_date=data.due_date,
                )
            )
        logger.info(
            f"income_recorded: user_id={self.user_id} type={data.type.value} "
            f"amount_paise={amount}"
        )
        return income


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = RecordStore(session, user_id)

    def list_all(self) -> list[BudgetCategory]:
        return self.store.categories.list()

    def get(self, category_id: int) -> BudgetCategory:
        category = self.store.categories.get(category_id)
        if not category:
            raise not_found("Category")
        return category

    def tree(self) -> CategoryTree:
        return CategoryTree.build(self.list_all())

    def main_categories(self) -> list[BudgetCategory]:
        return self.tree().roots()

    def subcategories(self, parent_id: int) -> list[BudgetCategory]:
        return self.tree().direct_children(parent_id)

    def create(self, data: CategoryIn) -> BudgetCategory:
        return self._save(data.model_copy(update={"id": None}))

    def update(self, category_id: int, data: CategoryIn) -> BudgetCategory:
        return self._save(data.model_copy(update={"id": category_id}))

    def _save(self, data: CategoryIn) -> BudgetCategory:
        categories = self.list_all()
        expenses = self.store.expenses.list()
        income = IncomeService(self.session, self.user_id).summary()
        result = validate_category_write(
            data, categories, expenses, income.total_available
        )
        if isinstance(result, Err):
            logger.warning(
                f"category_rejected: user_id={self.user_id} kind={result.kind.value} "
                f"id={data.id} parent_id={data.parent_id}"
            )
            raise BudgetError.from_err(result)
        draft = result.value

        with self.store.transaction():
            if draft.id is None:
                category = self.store.categories.insert(
                    BudgetCategory(
                        name=draft.name,
                        amount_paise=draft.amount_paise,
                        parent_id=draft.parent_id,
                    )
                )
            else:
                self.store.categories.update(
                    draft.id,
                    {
                        "name": draft.name,
                        "amount_paise": draft.amount_paise,
                        "parent_id": draft.parent_id,
                    },
                )
                category = self.store.categories.get(draft.id)
        logger.info(
            f"category_saved: user_id={self.user_id} id={category.id} "
            f"parent_id={category.parent_id} amount_paise={category.amount_paise}"
        )
        return category

    def has_expenses(self, category_id: int) -> bool:
        ids = list(self.tree().subtree_ids(category_id))
        return bool(self.store.expenses.list(Expense.category_id.in_(ids)))

    def delete(
        self,
        category_id: int,
        expense_action: ExpenseAction = ExpenseAction.delete,
        target_category_id: Optional[int] = None,
    ) -> dict[str, int]:
        """Delete a category, its direct subcategories and handle their expenses.

        All writes run in one transaction. Deeper descendants are left in place
        and surface as orphans until ``purge_orphans`` runs.
        """
        tree = self.tree()
        if category_id not in tree:
            raise not_found("Category")
        removed_ids = [category_id] + [c.id for c in tree.direct_children(category_id)]

        if expense_action == ExpenseAction.move:
            if target_category_id is None:
                raise BudgetError(
                    ErrorKind.invalid_input,
                    "Please select a target category to move expenses to.",
                )
            if target_category_id not in tree or target_category_id in removed_ids:
                raise BudgetError(
                    ErrorKind.invalid_input, "Target category must survive the delete"
                )

        moved = deleted_expenses = 0
        with self.store.transaction():
            affected = self.store.expenses.list(Expense.category_id.in_(removed_ids))
            if expense_action == ExpenseAction.move:
                for expense in affected:
                    self.store.expenses.update(
                        expense.id, {"category_id": target_category_id}
                    )
                moved = len(affected)
            else:
                deleted_expenses = self.store.expenses.delete(
                    Expense.category_id.in_(removed_ids)
                )
            deleted_children = self.store.categories.delete(
                BudgetCategory.parent_id == category_id
            )
            self.store.categories.delete(BudgetCategory.id == category_id)

        logger.info(
            f"category_deleted: user_id={self.user_id} id={category_id} "
            f"children={deleted_children} moved={moved} deleted_expenses={deleted_expenses}"
        )
        return {
            "deleted_categories": deleted_children + 1,
            "deleted_expenses": deleted_expenses,
            "moved_expenses": moved,
        }

    def purge_orphans(self) -> dict[str, int]:
        """Remove subcategories and expenses whose parent no longer exists.

        Safe to re-run; a second pass over clean data removes nothing.
        """
        removed_categories = removed_expenses = 0
        with self.store.transaction():
            while True:
                orphans = find_orphans(self.list_all(), [])["category_ids"]
                if not orphans:
                    break
                removed_categories += self.store.categories.delete(
                    BudgetCategory.id.in_(orphans)
                )
            orphan_expenses = find_orphans(
                self.list_all(), self.store.expenses.list()
            )["expense_ids"]
            if orphan_expenses:
                removed_expenses = self.store.expenses.delete(
                    Expense.id.in_(orphan_expenses)
                )
        if removed_categories or removed_expenses:
            logger.info(
                f"orphans_purged: user_id={self.user_id} "
                f"categories={removed_categories} expenses={removed_expenses}"
            )
        return {"categories": removed_categories, "expenses": removed_expenses}

    def add_recommended(self) -> list[BudgetCategory]:
        if self.list_all():
            raise BudgetError(
                ErrorKind.invalid_input, "Recommended categories need an empty budget"
            )
        income = IncomeService(self.session, self.user_id).summary()
        if income.total_available <= 0:
            raise BudgetError(
                ErrorKind.invalid_input, "Add your income before creating a budget"
            )
        rows = [
            BudgetCategory(name=name, amount_paise=amount)
            for name, amount in recommended_allocations(income.total_available)
        ]
        with self.store.transaction():
            created = self.store.categories.insert(rows)
        logger.info(f"recommended_categories_added: user_id={self.user_id}")
        return created


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = RecordStore(session, user_id)

    def list_all(self) -> list[Expense]:
        return self.store.expenses.list(
            order_by=[Expense.created_at.desc(), Expense.id.desc()]
        )

    def get(self, expense_id: int) -> Expense:
        expense = self.store.expenses.get(expense_id)
        if not expense:
            raise not_found("Expense")
        return expense

    def _require_category(self, category_id: Optional[int]) -> BudgetCategory:
        if category_id is None:
            raise BudgetError(
                ErrorKind.invalid_input, "Please select a category and enter a valid amount."
            )
        category = self.store.categories.get(category_id)
        if not category:
            raise BudgetError(
                ErrorKind.orphan_reference, "Category no longer exists"
            )
        return category

    def create(self, data: ExpenseIn) -> Expense:
        amount = unwrap(parse_amount(data.amount))
        category = self._require_category(data.category_id)
        expense = Expense(
            category_id=category.id,
            amount_paise=amount,
            description=(data.description or "").strip() or None,
        )
        if data.created_at is not None:
            expense.created_at = _naive_utc(data.created_at)
        with self.store.transaction():
            expense = self.store.expenses.insert(expense)
        logger.info(
            f"expense_logged: user_id={self.user_id} category_id={category.id} "
            f"amount_paise={amount}"
        )
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        self.get(expense_id)
        amount = unwrap(parse_amount(data.amount))
        category = self._require_category(data.category_id)
        values: dict[str, object] = {
            "category_id": category.id,
            "amount_paise": amount,
            "description": (data.description or "").strip() or None,
        }
        if data.created_at is not None:
            values["created_at"] = _naive_utc(data.created_at)
        with self.store.transaction():
            self.store.expenses.update(expense_id, values)
        return self.get(expense_id)

    def move(self, expense_id: int, target_category_id: int) -> Expense:
        self.get(expense_id)
        category = self._require_category(target_category_id)
        with self.store.transaction():
            self.store.expenses.update(expense_id, {"category_id": category.id})
        logger.info(
            f"expense_moved: user_id={self.user_id} id={expense_id} "
            f"category_id={category.id}"
        )
        return self.get(expense_id)

    def delete(self, expense_id: int) -> None:
        self.get(expense_id)
        with self.store.transaction():
            self.store.expenses.delete(Expense.id == expense_id)
        logger.info(f"expense_deleted: user_id={self.user_id} id={expense_id}")

    def category_history(self, category_id: int) -> dict[str, object]:
        categories = self.store.categories.list()
        tree = CategoryTree.build(categories)
        category = tree.get(category_id)
        if category is None:
            raise not_found("Category")
        ids = tree.subtree_ids(category_id)
        expenses = [e for e in self.list_all() if e.category_id in ids]
        spent = category_spending(tree, expenses, category_id)
        return {
            "category": category,
            "expenses": expenses,
            "allocated_paise": category.amount_paise,
            "spent_paise": spent,
            "remaining_paise": category.amount_paise - spent,
            "percentage_used": percentage_used(spent, category.amount_paise),
        }


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = RecordStore(session, user_id)
        self.timezone = get_settings().timezone

    def _snapshot(self) -> tuple[CategoryTree, list[Expense]]:
        return (
            CategoryTree.build(self.store.categories.list()),
            self.store.expenses.list(),
        )

    def summary(self, today: Optional[date] = None) -> dict[str, object]:
        tree, expenses = self._snapshot()
        income = IncomeService(self.session, self.user_id).summary()
        totals = spending_summary(tree, expenses, _today(today), tz=self.timezone)
        allocated = totals["total_allocated_paise"]
        return {
            **totals,
            "earned_income_paise": income.earned,
            "borrowed_income_paise": income.borrowed,
            "total_available_income_paise": income.total_available,
            "include_borrowed_in_budget": income.include_borrowed_in_budget,
            "unallocated_paise": income.total_available - allocated,
            "allocation_status": allocation_status(allocated, income.total_available),
        }

    def categories(self) -> dict[str, object]:
        tree, expenses = self._snapshot()
        orphans = [e.id for e in expenses if e.category_id not in tree]
        if orphans:
            logger.warning(
                f"orphan_expenses_skipped: user_id={self.user_id} count={len(orphans)}"
            )
        return {
            "categories": category_breakdown(tree, expenses),
            "overspent": overspent_categories(tree, expenses),
            "orphan_expense_ids": orphans,
        }

    def trend(self, today: Optional[date] = None, months: int = 6) -> list[dict[str, object]]:
        _, expenses = self._snapshot()
        return monthly_trend(expenses, _today(today), months=months, tz=self.timezone)


class RepaymentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.store = RecordStore(session, user_id)

    def upcoming(self, today: Optional[date] = None) -> list[dict[str, object]]:
        today = _today(today)
        rows = self.store.incomes.list(
            Income.type == IncomeType.borrowed,
            Income.due_date.is_not(None),
            Income.due_date >= today,
            order_by=[Income.due_date.asc(), Income.id.asc()],
        )
        return [_repayment_row(row, today) for row in rows]

    def _repayments_category(self) -> BudgetCategory:
        existing = self.store.categories.list(
            BudgetCategory.name == REPAYMENTS_CATEGORY,
            BudgetCategory.parent_id.is_(None),
        )
        if existing:
            return existing[0]
        # zero allocation leaves the income check untouched
        return self.store.categories.insert(
            BudgetCategory(name=REPAYMENTS_CATEGORY, amount_paise=0)
        )

    def log_repayment(self, data: RepaymentIn) -> Expense:
        amount = unwrap(parse_amount(data.amount))
        source = data.source.strip()
        with self.store.transaction():
            category = self._repayments_category()
            expense = self.store.expenses.insert(
                Expense(
                    category_id=category.id,
                    amount_paise=amount,
                    description=(data.notes or "").strip() or f"Repayment to {source}",
                )
            )
        logger.info(
            f"repayment_logged: user_id={self.user_id} source={source} "
            f"amount_paise={amount}"
        )
        return expense


def _repayment_row(income: Income, today: date) -> dict[str, object]:
    status, days = repayment_status(income.due_date, today)
    return {
        "income_id": income.id,
        "user_id": income.user_id,
        "source": income.source,
        "amount_paise": income.amount_paise,
        "due_date": income.due_date,
        "status": status,
        "days": days,
    }


def due_repayment_reminders(
    session: Session, today: date, *, window_days: int = 7
) -> list[dict[str, object]]:
    """Borrowed incomes across all users that are overdue or due within the window."""
    horizon = today + timedelta(days=window_days)
    rows = session.scalars(
        select(Income)
        .where(
            Income.type == IncomeType.borrowed,
            Income.due_date.is_not(None),
            Income.due_date <= horizon,
        )
        .order_by(Income.user_id, Income.due_date)
    ).all()
    return [_repayment_row(row, today) for row in rows]
