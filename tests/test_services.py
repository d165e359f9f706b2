from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from categories import get_remaining_budget
from database import Base
from errors import BudgetError, ErrorKind
from models import BudgetCategory, Expense, ExpenseAction, IncomeType
from schemas import CategoryIn, ExpenseIn, IncomeIn, ProfileIn, RepaymentIn
from services import (
    CategoryService,
    ExpenseService,
    IncomeService,
    RepaymentService,
    ReportService,
    UserService,
    due_repayment_reminders,
)
from spending import category_spending


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _with_salary(session, user_id: int = 1, amount: str = "20000") -> None:
    IncomeService(session, user_id).record(IncomeIn(amount=amount))


def test_budget_flow_from_income_to_reports() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    expenses = ExpenseService(session, 1)

    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    groceries = cats.create(CategoryIn(name="Groceries", amount="4000", parent_id=needs.id))
    expenses.create(ExpenseIn(category_id=groceries.id, amount="1,500", description="Veg"))
    expenses.create(ExpenseIn(category_id=needs.id, amount=500))

    with pytest.raises(BudgetError) as exc:
        cats.create(CategoryIn(name="Wants", amount="12000"))
    assert exc.value.kind == ErrorKind.allocation_exceeds_income

    with pytest.raises(BudgetError) as exc:
        cats.create(CategoryIn(name="Rent", amount="4001", parent_id=needs.id))
    assert exc.value.kind == ErrorKind.allocation_exceeds_parent_budget

    report = ReportService(session, 1)
    summary = report.summary(today=date.today())
    assert summary["total_allocated_paise"] == 1_000_000
    assert summary["total_spent_paise"] == 200_000
    assert summary["unallocated_paise"] == 1_000_000
    assert summary["allocation_status"] == "ok"

    rows = report.categories()["categories"]
    assert rows[0]["spent_paise"] == 200_000
    assert rows[0]["signed_remaining_paise"] == 1_000_000 - 400_000 - 200_000
    assert rows[0]["subcategories"][0]["spent_paise"] == 150_000

    history = expenses.category_history(needs.id)
    assert len(history["expenses"]) == 2
    assert history["spent_paise"] == 200_000


def test_category_update_backs_out_old_amount() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    cats.create(CategoryIn(name="Wants", amount="10000"))

    updated = cats.update(needs.id, CategoryIn(name="Essentials", amount="10000"))

    assert updated.name == "Essentials"
    assert [c.name for c in cats.main_categories()] == ["Essentials", "Wants"]


def test_delete_removes_children_and_their_expenses() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    expenses = ExpenseService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    wants = cats.create(CategoryIn(name="Wants", amount="5000"))
    groceries = cats.create(CategoryIn(name="Groceries", amount="4000", parent_id=needs.id))
    expenses.create(ExpenseIn(category_id=needs.id, amount="100"))
    expenses.create(ExpenseIn(category_id=groceries.id, amount="200"))
    expenses.create(ExpenseIn(category_id=wants.id, amount="300"))

    assert cats.has_expenses(needs.id)
    result = cats.delete(needs.id)

    assert result == {"deleted_categories": 2, "deleted_expenses": 2, "moved_expenses": 0}
    assert [c.id for c in cats.list_all()] == [wants.id]
    assert [e.amount_paise for e in expenses.list_all()] == [30_000]


def test_delete_moves_expenses_to_surviving_category() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    expenses = ExpenseService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    wants = cats.create(CategoryIn(name="Wants", amount="5000"))
    groceries = cats.create(CategoryIn(name="Groceries", amount="4000", parent_id=needs.id))
    expenses.create(ExpenseIn(category_id=needs.id, amount="100"))
    expenses.create(ExpenseIn(category_id=groceries.id, amount="200"))

    result = cats.delete(needs.id, ExpenseAction.move, wants.id)

    assert result["moved_expenses"] == 2
    assert {e.category_id for e in expenses.list_all()} == {wants.id}


def test_delete_rejects_invalid_move_targets() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    groceries = cats.create(CategoryIn(name="Groceries", amount="4000", parent_id=needs.id))

    for target in (None, needs.id, groceries.id, 999):
        with pytest.raises(BudgetError) as exc:
            cats.delete(needs.id, ExpenseAction.move, target)
        assert exc.value.kind == ErrorKind.invalid_input
    assert len(cats.list_all()) == 2

    with pytest.raises(BudgetError) as exc:
        cats.delete(999)
    assert exc.value.kind == ErrorKind.not_found


def test_grandchildren_become_orphans_until_purged() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    expenses = ExpenseService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    groceries = cats.create(CategoryIn(name="Groceries", amount="4000", parent_id=needs.id))
    veg = cats.create(CategoryIn(name="Veg", amount="1000", parent_id=groceries.id))
    expenses.create(ExpenseIn(category_id=veg.id, amount="50"))

    cats.delete(needs.id)

    assert [c.id for c in cats.list_all()] == [veg.id]
    assert cats.main_categories() == []

    assert cats.purge_orphans() == {"categories": 1, "expenses": 1}
    assert cats.purge_orphans() == {"categories": 0, "expenses": 0}
    assert cats.list_all() == []
    assert expenses.list_all() == []


def test_reports_tolerate_orphaned_expenses() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    session.add(
        Expense(user_id=1, category_id=404, amount_paise=7_000, created_at=datetime.utcnow())
    )
    session.commit()

    report = ReportService(session, 1)
    categories = report.categories()
    summary = report.summary()

    assert len(categories["orphan_expense_ids"]) == 1
    assert categories["categories"][0]["category_id"] == needs.id
    assert categories["categories"][0]["spent_paise"] == 0
    assert summary["total_spent_paise"] == 7_000
    assert summary["top_category_paise"] == 0


def test_expense_requires_existing_category() -> None:
    session = make_session()
    expenses = ExpenseService(session, 1)

    with pytest.raises(BudgetError) as exc:
        expenses.create(ExpenseIn(category_id=None, amount="10"))
    assert exc.value.kind == ErrorKind.invalid_input

    with pytest.raises(BudgetError) as exc:
        expenses.create(ExpenseIn(category_id=999, amount="10"))
    assert exc.value.kind == ErrorKind.orphan_reference


def test_expense_update_move_and_delete() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    expenses = ExpenseService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    wants = cats.create(CategoryIn(name="Wants", amount="5000"))
    expense = expenses.create(ExpenseIn(category_id=needs.id, amount="100"))

    updated = expenses.update(
        expense.id, ExpenseIn(category_id=needs.id, amount="250", description=" Taxi ")
    )
    assert (updated.amount_paise, updated.description) == (25_000, "Taxi")

    moved = expenses.move(expense.id, wants.id)
    assert moved.category_id == wants.id

    expenses.delete(expense.id)
    with pytest.raises(BudgetError) as exc:
        expenses.get(expense.id)
    assert exc.value.kind == ErrorKind.not_found


def test_borrowed_income_toggle_drives_category_checks() -> None:
    session = make_session()
    incomes = IncomeService(session, 1)
    users = UserService(session, 1)
    incomes.record(
        IncomeIn(amount="50000", type=IncomeType.borrowed, source="Bank", due_date=date(2030, 1, 1))
    )

    assert incomes.summary().total_available == 5_000_000
    users.set_include_borrowed(False)
    summary = incomes.summary()
    assert (summary.earned, summary.borrowed, summary.total_available) == (0, 5_000_000, 0)

    with pytest.raises(BudgetError) as exc:
        CategoryService(session, 1).create(CategoryIn(name="Needs", amount="1"))
    assert exc.value.kind == ErrorKind.allocation_exceeds_income


def test_salary_income_cannot_carry_due_date() -> None:
    session = make_session()

    with pytest.raises(BudgetError) as exc:
        IncomeService(session, 1).record(IncomeIn(amount="100", due_date=date(2030, 1, 1)))
    assert exc.value.kind == ErrorKind.invalid_input


def test_latest_income_replaces_previous() -> None:
    session = make_session()
    incomes = IncomeService(session, 1)
    incomes.record(IncomeIn(amount="10000"))
    incomes.record(IncomeIn(amount="30000"))

    assert incomes.current().amount_paise == 3_000_000
    assert incomes.summary().total_available == 3_000_000
    assert len(incomes.list_all()) == 2


def test_users_never_see_each_others_records() -> None:
    session = make_session()
    _with_salary(session, user_id=1)
    needs = CategoryService(session, 1).create(CategoryIn(name="Needs", amount="100"))
    ExpenseService(session, 1).create(ExpenseIn(category_id=needs.id, amount="10"))

    other = CategoryService(session, 2)
    assert other.list_all() == []
    with pytest.raises(BudgetError) as exc:
        other.get(needs.id)
    assert exc.value.kind == ErrorKind.not_found
    with pytest.raises(BudgetError) as exc:
        ExpenseService(session, 2).create(ExpenseIn(category_id=needs.id, amount="10"))
    assert exc.value.kind == ErrorKind.orphan_reference
    assert ReportService(session, 2).summary()["total_spent_paise"] == 0


def test_recommended_categories_follow_income() -> None:
    session = make_session()
    cats = CategoryService(session, 1)

    with pytest.raises(BudgetError):
        cats.add_recommended()

    _with_salary(session)
    created = cats.add_recommended()
    assert [(c.name, c.amount_paise) for c in created] == [
        ("Needs", 1_000_000),
        ("Wants", 600_000),
        ("Savings", 400_000),
    ]

    with pytest.raises(BudgetError):
        cats.add_recommended()


def test_repayments_are_listed_and_logged() -> None:
    session = make_session()
    today = date(2025, 3, 10)
    incomes = IncomeService(session, 1)
    incomes.record(
        IncomeIn(amount="5000", type=IncomeType.borrowed, source="Ravi", due_date=today + timedelta(days=3))
    )
    incomes.record(
        IncomeIn(amount="900", type=IncomeType.borrowed, source="Old", due_date=today - timedelta(days=2))
    )
    repayments = RepaymentService(session, 1)

    upcoming = repayments.upcoming(today=today)
    assert [(row["source"], row["status"], row["days"]) for row in upcoming] == [("Ravi", "urgent", 3)]

    reminders = due_repayment_reminders(session, today)
    assert [row["status"] for row in reminders] == ["overdue", "urgent"]

    first = repayments.log_repayment(RepaymentIn(amount="1000", source="Ravi"))
    second = repayments.log_repayment(RepaymentIn(amount="500", source="Ravi", notes="Half"))
    assert first.description == "Repayment to Ravi"
    assert second.description == "Half"
    assert first.category_id == second.category_id

    repayment_cats = [c for c in CategoryService(session, 1).list_all() if c.name == "Repayments"]
    assert len(repayment_cats) == 1
    assert repayment_cats[0].amount_paise == 0


def test_profile_defaults_and_updates() -> None:
    session = make_session()
    users = UserService(session, 7)

    assert users.display_name() == "User"
    assert users.include_borrowed_in_budget() is True

    users.update_profile(ProfileIn(name="  Asha ", email="asha@example.com"))
    assert users.display_name() == "Asha"

    with pytest.raises(BudgetError) as exc:
        users.update_profile(ProfileIn(name="   "))
    assert exc.value.kind == ErrorKind.invalid_input


def test_store_failure_rolls_back_and_reports_unavailable(monkeypatch) -> None:
    session = make_session()

    def boom() -> None:
        raise OperationalError("INSERT", {}, Exception("db down"))

    monkeypatch.setattr(session, "commit", boom)

    with pytest.raises(BudgetError) as exc:
        IncomeService(session, 1).record(IncomeIn(amount="100"))
    assert exc.value.kind == ErrorKind.store_unavailable

    monkeypatch.undo()
    assert IncomeService(session, 1).list_all() == []
    assert session.query(BudgetCategory).count() == 0


def test_salary_budget_walkthrough() -> None:
    session = make_session()
    IncomeService(session, 1).record(IncomeIn(amount="20000", type=IncomeType.salary))
    cats = CategoryService(session, 1)
    expenses = ExpenseService(session, 1)

    needs = cats.create(CategoryIn(name="Needs", amount="10000"))

    with pytest.raises(BudgetError) as exc:
        cats.create(CategoryIn(name="Wants", amount="12000"))
    assert exc.value.kind == ErrorKind.allocation_exceeds_income
    with pytest.raises(BudgetError) as exc:
        cats.create(CategoryIn(name="Groceries", amount="11000", parent_id=needs.id))
    assert exc.value.kind == ErrorKind.allocation_exceeds_parent_budget

    expenses.create(ExpenseIn(category_id=needs.id, amount="3000"))

    all_cats = cats.list_all()
    all_expenses = expenses.list_all()
    assert [c.name for c in all_cats] == ["Needs"]
    assert category_spending(all_cats, all_expenses, needs.id) == 300_000
    assert get_remaining_budget(all_cats, all_expenses, needs.id) == 700_000


def test_root_update_keeps_room_for_subcategories() -> None:
    session = make_session()
    _with_salary(session)
    cats = CategoryService(session, 1)
    needs = cats.create(CategoryIn(name="Needs", amount="10000"))
    cats.create(CategoryIn(name="Groceries", amount="8000", parent_id=needs.id))

    with pytest.raises(BudgetError) as exc:
        cats.update(needs.id, CategoryIn(name="Needs", amount="1000"))
    assert exc.value.kind == ErrorKind.allocation_exceeds_parent_budget
    assert cats.get(needs.id).amount_paise == 1_000_000
