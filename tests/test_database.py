from datetime import datetime

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session

from database import Base, _enable_sqlite_pragmas
from models import BudgetCategory, Expense


def test_dangling_references_can_be_stored(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'budget.db'}")
    event.listen(engine, "connect", _enable_sqlite_pragmas)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        session.add(BudgetCategory(user_id=1, name="Veg", amount_paise=100, parent_id=999))
        session.add(
            Expense(user_id=1, category_id=999, amount_paise=100, created_at=datetime(2025, 1, 1))
        )
        session.commit()

        assert session.query(BudgetCategory).count() == 1
        assert session.query(Expense).count() == 1
