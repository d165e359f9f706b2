import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from auth import issue_user_token, resolve_user_token
from config import get_settings
from database import SessionLocal, init_db
from errors import BudgetError, ErrorKind
from models import ExpenseAction
from money import format_inr
from periods import local_date, resolve_period, today_in
from scheduler import SchedulerManager
from schemas import (
    CategoryIn,
    CategoryOut,
    ExpenseIn,
    ExpenseMoveIn,
    ExpenseOut,
    IncludeBorrowedIn,
    IncomeIn,
    IncomeOut,
    ProfileIn,
    ProfileOut,
    RepaymentIn,
    RepaymentOut,
    TokenIn,
)
from services import (
    CategoryService,
    ExpenseService,
    IncomeService,
    ReportService,
    RepaymentService,
    UserService,
)

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024

settings = get_settings()
app = FastAPI(title="Budget Planner")
app.mount(
    "/blobs/profile-images",
    StaticFiles(directory=str(settings.blob_dir), check_dir=False),
    name="profile_images",
)

_STATUS_BY_KIND = {
    ErrorKind.not_found: 404,
    ErrorKind.store_unavailable: 503,
}


def _http_error(exc: BudgetError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(exc.kind, 400),
        detail={"message": exc.message, "kind": exc.kind.value},
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    scheme, _, token = (authorization or "").partition(" ")
    user_id = resolve_user_token(token.strip()) if scheme.lower() == "bearer" else None
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return user_id


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info(f"startup: database={settings.database_url}")
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _formatted(values: dict[str, object]) -> dict[str, str]:
    return {
        key.removesuffix("_paise"): format_inr(value)
        for key, value in values.items()
        if key.endswith("_paise") and isinstance(value, int)
    }


@app.post("/api/auth/token")
def issue_token(data: TokenIn, db: Session = Depends(get_db)):
    # local development only; deployments authenticate upstream
    if not get_settings().dev_tokens:
        raise HTTPException(status_code=404, detail="Not Found")
    try:
        UserService(db, data.user_id).ensure()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {"token": issue_user_token(data.user_id), "token_type": "bearer"}


@app.get("/api/income")
def get_income(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    service = IncomeService(db, user_id)
    try:
        summary = service.summary()
        history = service.list_all()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {
        "current": IncomeOut.model_validate(summary.current) if summary.current else None,
        "earned_paise": summary.earned,
        "borrowed_paise": summary.borrowed,
        "total_available_paise": summary.total_available,
        "include_borrowed_in_budget": summary.include_borrowed_in_budget,
        "history": [IncomeOut.model_validate(row) for row in history],
    }


@app.post("/api/income", status_code=201)
def record_income(
    data: IncomeIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        income = IncomeService(db, user_id).record(data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return IncomeOut.model_validate(income)


@app.put("/api/income/include-borrowed")
def set_include_borrowed(
    data: IncludeBorrowedIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        UserService(db, user_id).set_include_borrowed(data.include)
        summary = IncomeService(db, user_id).summary()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {
        "include_borrowed_in_budget": summary.include_borrowed_in_budget,
        "total_available_paise": summary.total_available,
    }


@app.get("/api/categories")
def list_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        tree = CategoryService(db, user_id).tree()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return [
        {
            **CategoryOut.model_validate(root).model_dump(),
            "subcategories": [
                CategoryOut.model_validate(child) for child in tree.direct_children(root.id)
            ],
        }
        for root in tree.roots()
    ]


@app.post("/api/categories", status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.post("/api/categories/recommended", status_code=201)
def add_recommended_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        created = CategoryService(db, user_id).add_recommended()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return [CategoryOut.model_validate(row) for row in created]


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    expenses: ExpenseAction = ExpenseAction.delete,
    target: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).delete(category_id, expenses, target)
    except BudgetError as exc:
        raise _http_error(exc) from exc


@app.post("/api/categories/purge-orphans")
def purge_orphans(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        return CategoryService(db, user_id).purge_orphans()
    except BudgetError as exc:
        raise _http_error(exc) from exc


@app.get("/api/categories/{category_id}")
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = CategoryService(db, user_id)
    try:
        category = service.get(category_id)
        has_expenses = service.has_expenses(category_id)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {
        **CategoryOut.model_validate(category).model_dump(),
        "has_expenses": has_expenses,
    }


@app.get("/api/categories/{category_id}/expenses")
def category_expenses(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        history = ExpenseService(db, user_id).category_history(category_id)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {
        "category": CategoryOut.model_validate(history["category"]),
        "expenses": [ExpenseOut.model_validate(e) for e in history["expenses"]],
        "allocated_paise": history["allocated_paise"],
        "spent_paise": history["spent_paise"],
        "remaining_paise": history["remaining_paise"],
        "percentage_used": history["percentage_used"],
    }


@app.get("/api/expenses")
def list_expenses(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    params = request.query_params
    try:
        expenses = ExpenseService(db, user_id).list_all()
        if params.get("period"):
            period = resolve_period(
                params.get("period"),
                params.get("start"),
                params.get("end"),
                today=today_in(settings.timezone),
            )
            expenses = [
                e
                for e in expenses
                if period.contains(local_date(e.created_at, settings.timezone))
            ]
    except BudgetError as exc:
        raise _http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [ExpenseOut.model_validate(e) for e in expenses]


@app.post("/api/expenses", status_code=201)
def create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        expense = ExpenseService(db, user_id).create(data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return ExpenseOut.model_validate(expense)


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        expense = ExpenseService(db, user_id).update(expense_id, data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return ExpenseOut.model_validate(expense)


@app.post("/api/expenses/{expense_id}/move")
def move_expense(
    expense_id: int,
    data: ExpenseMoveIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        expense = ExpenseService(db, user_id).move(expense_id, data.target_category_id)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return ExpenseOut.model_validate(expense)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        ExpenseService(db, user_id).delete(expense_id)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/reports/summary")
def report_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        summary = ReportService(db, user_id).summary()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {**summary, "formatted": _formatted(summary)}


@app.get("/api/reports/categories")
def report_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        return ReportService(db, user_id).categories()
    except BudgetError as exc:
        raise _http_error(exc) from exc


@app.get("/api/reports/trend")
def report_trend(
    months: int = 6,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    if months < 1 or months > 24:
        raise HTTPException(status_code=400, detail="months must be between 1 and 24")
    try:
        return ReportService(db, user_id).trend(months=months)
    except BudgetError as exc:
        raise _http_error(exc) from exc


@app.get("/api/repayments")
def upcoming_repayments(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    try:
        rows = RepaymentService(db, user_id).upcoming()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return [RepaymentOut.model_validate(row) for row in rows]


@app.post("/api/repayments", status_code=201)
def log_repayment(
    data: RepaymentIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        expense = RepaymentService(db, user_id).log_repayment(data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return ExpenseOut.model_validate(expense)


@app.get("/api/profile")
def get_profile(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    service = UserService(db, user_id)
    try:
        user = service.ensure()
        name = service.display_name()
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {**ProfileOut.model_validate(user).model_dump(), "display_name": name}


@app.put("/api/profile")
def update_profile(
    data: ProfileIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        user = UserService(db, user_id).update_profile(data)
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return ProfileOut.model_validate(user)


@app.post("/api/profile/image")
async def upload_profile_image(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    content = await file.read()
    if len(content) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=400, detail="Image too large (max 5MB)")
    try:
        url = UserService(db, user_id).upload_profile_image(
            content, file.content_type or ""
        )
    except BudgetError as exc:
        raise _http_error(exc) from exc
    return {"profile_image_url": url}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
