from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from categories import CategoryTree, signed_remaining_budget
from errors import Err, ErrorKind, Ok, Result
from models import BudgetCategory, Expense
from money import format_inr, parse_amount
from schemas import CategoryIn

MAX_NAME_LENGTH = 100


@dataclass(frozen=True)
class CategoryDraft:
    name: str
    amount_paise: int
    parent_id: Optional[int]
    id: Optional[int] = None


def _below_children(
    tree: CategoryTree, existing: Optional[BudgetCategory], amount: int
) -> Optional[Err]:
    # a category never holds less than its direct subcategories already split
    if existing is None:
        return None
    children_total = tree.children_allocated(existing.id)
    if amount < children_total:
        return Err(
            ErrorKind.allocation_exceeds_parent_budget,
            f"Amount cannot be less than the {format_inr(children_total)} "
            f"already allocated to subcategories",
        )
    return None


def validate_category_write(
    write: CategoryIn,
    categories: Sequence[BudgetCategory] | CategoryTree,
    expenses: Sequence[Expense],
    total_available_income: int,
) -> Result[CategoryDraft]:
    """Accept or reject a proposed category create/update.

    Pure: nothing is persisted. Root writes are checked against available
    income, subcategory writes against the parent's remaining budget with the
    edited subcategory's old allocation backed out.
    """
    name = (write.name or "").strip()
    if not name or write.amount is None or str(write.amount).strip() == "":
        return Err(ErrorKind.invalid_input, "Please enter both name and amount.")
    if len(name) > MAX_NAME_LENGTH:
        return Err(ErrorKind.invalid_input, "Category name is too long.")
    parsed = parse_amount(write.amount)
    if isinstance(parsed, Err):
        return parsed
    amount = parsed.value

    tree = categories if isinstance(categories, CategoryTree) else CategoryTree.build(categories)
    existing: Optional[BudgetCategory] = None
    if write.id is not None:
        existing = tree.get(write.id)
        if existing is None:
            return Err(ErrorKind.not_found, "Category not found")

    draft = CategoryDraft(name=name, amount_paise=amount, parent_id=write.parent_id, id=write.id)

    if write.parent_id is None:
        total_allocated = sum(c.amount_paise for c in tree.roots())
        editing_amount = (
            existing.amount_paise
            if existing is not None and existing.parent_id is None
            else 0
        )
        new_total = total_allocated - editing_amount + amount
        if new_total > total_available_income:
            return Err(
                ErrorKind.allocation_exceeds_income,
                f"Total allocation ({format_inr(new_total)}) would exceed your "
                f"available income ({format_inr(total_available_income)})!",
            )
        shrink = _below_children(tree, existing, amount)
        return shrink or Ok(draft)

    parent = tree.get(write.parent_id)
    if parent is None:
        return Err(ErrorKind.orphan_reference, "Parent category no longer exists")
    if existing is not None and (
        write.parent_id == existing.id or write.parent_id in tree.descendant_ids(existing.id)
    ):
        return Err(
            ErrorKind.invalid_input, "A category cannot be nested under itself."
        )

    shrink = _below_children(tree, existing, amount)
    if shrink is not None:
        return shrink

    exclude = existing.id if existing is not None and existing.parent_id == parent.id else None
    remaining = max(
        0, signed_remaining_budget(tree, expenses, parent.id, exclude_child_id=exclude)
    )
    if amount > remaining:
        return Err(
            ErrorKind.allocation_exceeds_parent_budget,
            f"Amount cannot exceed remaining budget of {format_inr(remaining)}",
        )
    return Ok(draft)
