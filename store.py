"""User-scoped record collections over a SQLAlchemy session.

Each collection exposes list/get/insert/update/delete and never reaches rows
owned by another user. Writes are flushed, not committed; ``RecordStore.transaction``
commits a unit of work or rolls it back and reports ``StoreUnavailable``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generic, Iterator, Optional, Sequence, TypeVar, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import BudgetError, ErrorKind
from models import BudgetCategory, Expense, Income, User

logger = logging.getLogger(__name__)

M = TypeVar("M")


def _unavailable(action: str, exc: Exception) -> BudgetError:
    logger.error(f"store_failure: action={action} error={exc}")
    return BudgetError(
        ErrorKind.store_unavailable, "The budget store is unavailable, please retry"
    )


class Collection(Generic[M]):
    def __init__(
        self,
        session: Session,
        model: type[M],
        user_id: int,
        *,
        owner_column: str = "user_id",
    ) -> None:
        self.session = session
        self.model = model
        self.user_id = user_id
        self.owner = getattr(model, owner_column)
        self.owner_column = owner_column

    def _default_order(self) -> list[Any]:
        return [self.model.created_at.asc(), self.model.id.asc()]

    def list(self, *criteria: Any, order_by: Optional[Sequence[Any]] = None) -> list[M]:
        stmt = select(self.model).where(self.owner == self.user_id, *criteria)
        stmt = stmt.order_by(*(order_by or self._default_order()))
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise _unavailable(f"list:{self.model.__tablename__}", exc) from exc

    def get(self, record_id: int) -> Optional[M]:
        stmt = select(self.model).where(
            self.model.id == record_id, self.owner == self.user_id
        )
        try:
            return self.session.scalar(stmt)
        except SQLAlchemyError as exc:
            raise _unavailable(f"get:{self.model.__tablename__}", exc) from exc

    def insert(self, records: Union[M, Sequence[M]]) -> Union[M, list[M]]:
        many = isinstance(records, (list, tuple))
        batch = list(records) if many else [records]
        for record in batch:
            setattr(record, self.owner_column, self.user_id)
        try:
            self.session.add_all(batch)
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _unavailable(f"insert:{self.model.__tablename__}", exc) from exc
        return batch if many else batch[0]

    def update(self, record_id: int, values: dict[str, Any]) -> bool:
        stmt = (
            update(self.model)
            .where(self.model.id == record_id, self.owner == self.user_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _unavailable(f"update:{self.model.__tablename__}", exc) from exc
        return (result.rowcount or 0) > 0

    def delete(self, *criteria: Any) -> int:
        stmt = (
            delete(self.model)
            .where(self.owner == self.user_id, *criteria)
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _unavailable(f"delete:{self.model.__tablename__}", exc) from exc
        return result.rowcount or 0


class RecordStore:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.incomes: Collection[Income] = Collection(session, Income, user_id)
        self.categories: Collection[BudgetCategory] = Collection(
            session, BudgetCategory, user_id
        )
        self.expenses: Collection[Expense] = Collection(session, Expense, user_id)
        self.users: Collection[User] = Collection(
            session, User, user_id, owner_column="id"
        )

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _unavailable("commit", exc) from exc
        except Exception:
            self.session.rollback()
            raise
