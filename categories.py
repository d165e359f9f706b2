"""Category forest resolution over a flat list of budget categories.

Categories arrive as a flat list with a nullable ``parent_id``. ``CategoryTree``
indexes them once (id -> category, parent id -> child ids) and every traversal
works on ids, so malformed data (cycles, dangling parents) can never recurse
forever.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from models import BudgetCategory, Expense


@dataclass
class CategoryTree:
    by_id: dict[int, BudgetCategory] = field(default_factory=dict)
    children: dict[Optional[int], list[int]] = field(default_factory=dict)
    order: list[int] = field(default_factory=list)

    @classmethod
    def build(cls, categories: Iterable[BudgetCategory]) -> "CategoryTree":
        tree = cls()
        for category in categories:
            tree.by_id[category.id] = category
            tree.order.append(category.id)
            tree.children.setdefault(category.parent_id, []).append(category.id)
        return tree

    def get(self, category_id: Optional[int]) -> Optional[BudgetCategory]:
        if category_id is None:
            return None
        return self.by_id.get(category_id)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self.by_id

    def roots(self) -> list[BudgetCategory]:
        return [self.by_id[cid] for cid in self.children.get(None, [])]

    def direct_children(self, parent_id: int) -> list[BudgetCategory]:
        return [self.by_id[cid] for cid in self.children.get(parent_id, [])]

    def descendant_ids(self, root_id: int) -> set[int]:
        seen: set[int] = set()
        stack = list(self.children.get(root_id, []))
        while stack:
            current = stack.pop()
            if current in seen or current == root_id:
                continue
            seen.add(current)
            stack.extend(self.children.get(current, []))
        return seen

    def subtree_ids(self, root_id: int) -> set[int]:
        return {root_id} | self.descendant_ids(root_id)

    def children_allocated(self, parent_id: int, *, exclude_id: Optional[int] = None) -> int:
        return sum(
            c.amount_paise
            for c in self.direct_children(parent_id)
            if c.id != exclude_id
        )

    def orphan_ids(self) -> list[int]:
        """Categories whose parent id points at nothing."""
        return [
            cid
            for cid in self.order
            if self.by_id[cid].parent_id is not None
            and self.by_id[cid].parent_id not in self.by_id
        ]


def get_main_categories(categories: Sequence[BudgetCategory]) -> list[BudgetCategory]:
    return [c for c in categories if c.parent_id is None]


def get_subcategories(
    categories: Sequence[BudgetCategory], parent_id: int
) -> list[BudgetCategory]:
    return [c for c in categories if c.parent_id == parent_id]


def get_all_descendant_ids(categories: Sequence[BudgetCategory], root_id: int) -> set[int]:
    return CategoryTree.build(categories).descendant_ids(root_id)


def spent_in_subtree(tree: CategoryTree, expenses: Iterable[Expense], category_id: int) -> int:
    ids = tree.subtree_ids(category_id)
    return sum(e.amount_paise for e in expenses if e.category_id in ids)


def signed_remaining_budget(
    tree: CategoryTree,
    expenses: Sequence[Expense],
    category_id: int,
    *,
    exclude_child_id: Optional[int] = None,
) -> int:
    """Allocation left in a category, negative when overspent.

    ``exclude_child_id`` backs one child's allocation out of the children term,
    which is what a child editing its own amount must compare against.
    """
    category = tree.get(category_id)
    if category is None:
        return 0
    allocated_to_children = tree.children_allocated(
        category_id, exclude_id=exclude_child_id
    )
    spent = spent_in_subtree(tree, expenses, category_id)
    return category.amount_paise - allocated_to_children - spent


def get_remaining_budget(
    categories: Sequence[BudgetCategory] | CategoryTree,
    expenses: Sequence[Expense],
    category_id: int,
) -> int:
    tree = categories if isinstance(categories, CategoryTree) else CategoryTree.build(categories)
    return max(0, signed_remaining_budget(tree, expenses, category_id))


def find_orphans(
    categories: Sequence[BudgetCategory], expenses: Sequence[Expense]
) -> dict[str, list[int]]:
    tree = CategoryTree.build(categories)
    return {
        "expense_ids": [e.id for e in expenses if e.category_id not in tree],
        "category_ids": tree.orphan_ids(),
    }
