from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

from categories import CategoryTree, signed_remaining_budget, spent_in_subtree
from models import BudgetCategory, Expense
from periods import local_date, resolve_period, trailing_months

NEAR_LIMIT_RATIO = 0.9


def _tree(categories: Sequence[BudgetCategory] | CategoryTree) -> CategoryTree:
    if isinstance(categories, CategoryTree):
        return categories
    return CategoryTree.build(categories)


def category_spending(
    categories: Sequence[BudgetCategory] | CategoryTree,
    expenses: Sequence[Expense],
    category_id: int,
) -> int:
    tree = _tree(categories)
    if category_id not in tree:
        return 0
    return spent_in_subtree(tree, expenses, category_id)


def total_allocated(categories: Sequence[BudgetCategory] | CategoryTree) -> int:
    """Sum of root allocations; subcategories subdivide their root."""
    tree = _tree(categories)
    return sum(c.amount_paise for c in tree.roots())


def total_spent(expenses: Sequence[Expense]) -> int:
    return sum(e.amount_paise for e in expenses)


def period_spend(
    expenses: Sequence[Expense],
    start: date,
    end: date,
    *,
    tz: Optional[str] = None,
) -> int:
    return sum(
        e.amount_paise
        for e in expenses
        if start <= local_date(e.created_at, tz) <= end
    )


def monthly_trend(
    expenses: Sequence[Expense],
    today: date,
    *,
    months: int = 6,
    tz: Optional[str] = None,
) -> list[dict[str, object]]:
    out: list[dict[str, object]] = []
    for bucket in trailing_months(today, months):
        out.append(
            {
                "year": bucket.start.year,
                "month": bucket.start.month,
                "label": bucket.start.strftime("%b %y"),
                "amount_paise": period_spend(expenses, bucket.start, bucket.end, tz=tz),
            }
        )
    return out


def spend_by_category(
    categories: Sequence[BudgetCategory] | CategoryTree, expenses: Sequence[Expense]
) -> dict[int, int]:
    """Direct spend per existing category; orphaned expenses are skipped."""
    tree = _tree(categories)
    totals: dict[int, int] = {}
    for e in expenses:
        if e.category_id not in tree:
            continue
        totals[e.category_id] = totals.get(e.category_id, 0) + e.amount_paise
    return totals


def top_category_spend(
    expenses: Sequence[Expense],
    categories: Optional[Sequence[BudgetCategory] | CategoryTree] = None,
) -> int:
    if categories is not None:
        totals = spend_by_category(categories, expenses)
    else:
        totals = {}
        for e in expenses:
            totals[e.category_id] = totals.get(e.category_id, 0) + e.amount_paise
    return max(totals.values(), default=0)


def percentage_used(spent: int, allocated: int) -> Optional[float]:
    """None means no budget is set for the category."""
    if allocated <= 0:
        return None
    return spent / allocated * 100


def allocation_status(allocated: int, available: int) -> str:
    if available <= 0:
        return "over" if allocated > 0 else "ok"
    ratio = allocated / available
    if ratio > 1:
        return "over"
    if ratio > NEAR_LIMIT_RATIO:
        return "near"
    return "ok"


def _category_row(
    tree: CategoryTree, expenses: Sequence[Expense], category: BudgetCategory
) -> dict[str, object]:
    spent = spent_in_subtree(tree, expenses, category.id)
    signed = signed_remaining_budget(tree, expenses, category.id)
    return {
        "category_id": category.id,
        "name": category.name,
        "parent_id": category.parent_id,
        "allocated_paise": category.amount_paise,
        "spent_paise": spent,
        "remaining_paise": max(0, signed),
        "signed_remaining_paise": signed,
        "percentage_used": percentage_used(spent, category.amount_paise),
        "overspent": spent > category.amount_paise,
    }


def category_breakdown(
    categories: Sequence[BudgetCategory] | CategoryTree, expenses: Sequence[Expense]
) -> list[dict[str, object]]:
    tree = _tree(categories)
    rows: list[dict[str, object]] = []
    for root in tree.roots():
        row = _category_row(tree, expenses, root)
        row["subcategories"] = [
            _category_row(tree, expenses, child) for child in tree.direct_children(root.id)
        ]
        rows.append(row)
    return rows


def overspent_categories(
    categories: Sequence[BudgetCategory] | CategoryTree, expenses: Sequence[Expense]
) -> list[dict[str, object]]:
    tree = _tree(categories)
    out: list[dict[str, object]] = []
    for cid in tree.order:
        category = tree.by_id[cid]
        spent = spent_in_subtree(tree, expenses, cid)
        if spent > category.amount_paise:
            out.append(
                {
                    "category_id": cid,
                    "name": category.name,
                    "overspent_paise": spent - category.amount_paise,
                }
            )
    return out


def spending_summary(
    categories: Sequence[BudgetCategory] | CategoryTree,
    expenses: Sequence[Expense],
    today: date,
    *,
    tz: Optional[str] = None,
) -> dict[str, int]:
    tree = _tree(categories)
    totals: dict[str, int] = {}
    for slug in ("today", "week", "month"):
        period = resolve_period(slug, None, None, today=today)
        totals[f"{slug}_paise"] = period_spend(expenses, period.start, period.end, tz=tz)
    return {
        **totals,
        "top_category_paise": top_category_spend(expenses, tree),
        "total_spent_paise": total_spent(expenses),
        "total_allocated_paise": total_allocated(tree),
    }
