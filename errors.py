from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    invalid_input = "InvalidInput"
    allocation_exceeds_income = "AllocationExceedsIncome"
    allocation_exceeds_parent_budget = "AllocationExceedsParentBudget"
    orphan_reference = "OrphanReference"
    store_unavailable = "StoreUnavailable"
    not_found = "NotFound"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


class BudgetError(ValueError):
    """Raised by the service layer when a write is rejected or the store fails.

    Carries an :class:`ErrorKind` so callers can branch without parsing messages.
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @classmethod
    def from_err(cls, err: Err) -> "BudgetError":
        return cls(err.kind, err.message)


def unwrap(result: Result[T]) -> T:
    if isinstance(result, Err):
        raise BudgetError.from_err(result)
    return result.value


def not_found(what: str) -> BudgetError:
    return BudgetError(ErrorKind.not_found, f"{what} not found")
