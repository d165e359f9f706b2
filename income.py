from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from models import Income, IncomeType

RECOMMENDED_SPLIT = (
    ("Needs", Decimal("0.5")),
    ("Wants", Decimal("0.3")),
    ("Savings", Decimal("0.2")),
)


@dataclass(frozen=True)
class IncomeSummary:
    earned: int
    borrowed: int
    total_available: int
    include_borrowed_in_budget: bool
    current: Optional[Income] = None


def latest_income(incomes: Sequence[Income]) -> Optional[Income]:
    """The user's current income row: newest ``created_at``, newest id on ties."""
    if not incomes:
        return None
    return max(incomes, key=lambda row: (row.created_at, row.id or 0))


def compose_income(
    current: Optional[Income], include_borrowed_in_budget: bool = True
) -> IncomeSummary:
    if current is None:
        return IncomeSummary(0, 0, 0, include_borrowed_in_budget)
    earned = current.amount_paise if current.type == IncomeType.salary else 0
    borrowed = current.amount_paise if current.type == IncomeType.borrowed else 0
    total = earned + borrowed if include_borrowed_in_budget else earned
    return IncomeSummary(earned, borrowed, total, include_borrowed_in_budget, current)


def recommended_allocations(income_paise: int) -> list[tuple[str, int]]:
    """50/30/20 split of income in whole rupees.

    The last share takes the remainder so the split never exceeds the income.
    """
    whole_rupees = income_paise // 100
    out: list[tuple[str, int]] = []
    assigned = 0
    for name, share in RECOMMENDED_SPLIT[:-1]:
        rupees = int(
            (Decimal(income_paise) / 100 * share).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )
        rupees = min(rupees, whole_rupees - assigned)
        assigned += rupees
        out.append((name, rupees * 100))
    out.append((RECOMMENDED_SPLIT[-1][0], (whole_rupees - assigned) * 100))
    return out


def repayment_status(due_date: date, today: date) -> tuple[str, int]:
    days = (due_date - today).days
    if days < 0:
        return "overdue", abs(days)
    if days <= 7:
        return "urgent", days
    if days <= 30:
        return "upcoming", days
    return "future", days
