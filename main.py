import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import (
    build_login_limiter,
    clear_session_cookie,
    client_key,
    current_user,
    enforce_login_rate_limit,
    has_anti_forgery_header,
    issue_session,
    set_session_cookie,
)
from config import get_settings
from database import get_db, run_migrations, session_scope
from errors import (
    ExpenseTrackerError,
    InvalidCredentials,
    InvalidRequest,
    ValidationFailed,
    error_body,
)
from models import Category, Expense, User
from money import cents_to_amount
from periods import resolve_month
from schemas import CategoryIn, ExpenseIn, LoginIn
from services import (
    AuthService,
    CategoryService,
    ExpenseFilters,
    ExpenseService,
    MetricsService,
    display_name,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Tracker")
app.state.login_limiter = build_login_limiter()


@app.middleware("http")
async def require_anti_forgery_header(request: Request, call_next):
    if not has_anti_forgery_header(request):
        exc = InvalidRequest()
        logger.warning(
            f"request_rejected: method={request.method} path={request.url.path} "
            f"reason=missing_anti_forgery_header"
        )
        return JSONResponse(error_body(exc.code, exc.message), status_code=exc.status_code)
    return await call_next(request)


_cors_origins = get_settings().cors_origins
if _cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _first_error_message(errors) -> str:
    if not errors:
        return "Validation failed"
    first = errors[0]
    ctx = first.get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    loc = ".".join(
        str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")
    )
    message = first.get("msg", "Validation failed")
    return f"{loc}: {message}" if loc else message


@app.exception_handler(ExpenseTrackerError)
async def handle_expense_tracker_error(request: Request, exc: ExpenseTrackerError):
    return JSONResponse(error_body(exc.code, exc.message), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        error_body(ValidationFailed.code, _first_error_message(exc.errors())),
        status_code=ValidationFailed.status_code,
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    code = "NOT_FOUND" if exc.status_code == 404 else "ERROR"
    return JSONResponse(error_body(code, str(exc.detail)), status_code=exc.status_code)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"unhandled_error: method={request.method} path={request.url.path}")
    return JSONResponse(
        error_body("SERVER_ERROR", "Internal server error"), status_code=500
    )


@app.on_event("startup")
def startup_event():
    run_migrations()
    with session_scope() as session:
        CategoryService(session).reserved()


def user_payload(user: User) -> dict[str, object]:
    return {"id": user.id, "email": user.email}


def category_payload(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "displayName": display_name(category.name),
        "isReserved": category.is_reserved,
        "createdAt": category.created_at.isoformat(),
    }


def expense_payload(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "amount": cents_to_amount(expense.amount_cents),
        "amountCents": expense.amount_cents,
        "date": expense.date.isoformat(),
        "merchant": expense.merchant,
        "description": expense.description,
        "paymentMethod": expense.payment_method.value if expense.payment_method else None,
        "categoryId": expense.category_id,
        "categoryName": expense.category.name if expense.category else None,
        "createdAt": expense.created_at.isoformat(),
        "updatedAt": expense.updated_at.isoformat(),
    }


@app.post("/api/auth/login", dependencies=[Depends(enforce_login_rate_limit)])
def login(
    data: LoginIn, request: Request, response: Response, db: Session = Depends(get_db)
):
    try:
        user = AuthService(db).authenticate(data.email, data.password)
    except InvalidCredentials:
        logger.warning(f"login_failed: client={client_key(request)}")
        raise
    set_session_cookie(response, issue_session(user))
    logger.info(f"login_succeeded: user_id={user.id} client={client_key(request)}")
    return {"user": user_payload(user)}


@app.post("/api/auth/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@app.get("/api/auth/me")
def me(user: User = Depends(current_user)):
    return {"user": user_payload(user)}


@app.get("/api/categories", dependencies=[Depends(current_user)])
def list_categories(db: Session = Depends(get_db)):
    categories = CategoryService(db).list_all()
    return {"categories": [category_payload(c) for c in categories]}


@app.post(
    "/api/categories", status_code=201, dependencies=[Depends(current_user)]
)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    category = CategoryService(db).create(data)
    return {"category": category_payload(category)}


@app.put("/api/categories/{category_id}", dependencies=[Depends(current_user)])
def rename_category(category_id: int, data: CategoryIn, db: Session = Depends(get_db)):
    category = CategoryService(db).rename(category_id, data)
    return {"category": category_payload(category)}


@app.delete("/api/categories/{category_id}", dependencies=[Depends(current_user)])
def delete_category(category_id: int, db: Session = Depends(get_db)):
    reassigned = CategoryService(db).delete(category_id)
    return {"success": True, "reassigned": reassigned}


@app.get("/api/expenses", dependencies=[Depends(current_user)])
def list_expenses(
    page: int = Query(1, ge=1),
    month: Optional[str] = Query(None),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    q: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    period = None
    if month:
        try:
            period = resolve_month(month)
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc
    query = q.strip() if q else None
    filters = ExpenseFilters(month=period, category_id=category_id, query=query or None)
    result = ExpenseService(db).list(filters, page=page)
    return {
        "expenses": [expense_payload(e) for e in result.items],
        "pagination": {
            "page": result.page,
            "pageSize": result.page_size,
            "total": result.total,
            "totalPages": result.total_pages,
        },
    }


@app.get("/api/expenses/{expense_id}", dependencies=[Depends(current_user)])
def get_expense(expense_id: int, db: Session = Depends(get_db)):
    return {"expense": expense_payload(ExpenseService(db).get(expense_id))}


@app.post("/api/expenses", status_code=201, dependencies=[Depends(current_user)])
def create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
    return {"expense": expense_payload(ExpenseService(db).create(data))}


@app.put("/api/expenses/{expense_id}", dependencies=[Depends(current_user)])
def update_expense(expense_id: int, data: ExpenseIn, db: Session = Depends(get_db)):
    return {"expense": expense_payload(ExpenseService(db).update(expense_id, data))}


@app.delete("/api/expenses/{expense_id}", dependencies=[Depends(current_user)])
def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    ExpenseService(db).delete(expense_id)
    return {"success": True}


@app.get("/api/metrics/month", dependencies=[Depends(current_user)])
def month_metrics(month: str = Query(...), db: Session = Depends(get_db)):
    try:
        period = resolve_month(month)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc
    metrics = MetricsService(db).month_summary(period)
    top = metrics.top_category
    return {
        "month": period.slug,
        "summary": {
            "totalSpend": cents_to_amount(metrics.total_cents),
            "avgPerDay": cents_to_amount(metrics.avg_per_day_cents),
            "daysInMonth": period.days,
            "topCategory": {
                "id": top.id,
                "name": top.name,
                "displayName": display_name(top.name),
                "total": cents_to_amount(top.total_cents),
            }
            if top
            else None,
        },
        "categoryBreakdown": [
            {
                "id": item.id,
                "name": item.name,
                "displayName": display_name(item.name),
                "total": cents_to_amount(item.total_cents),
                "percentage": item.percentage,
            }
            for item in metrics.category_breakdown
        ],
        "dailyTotals": [
            {"date": day.date.isoformat(), "total": cents_to_amount(day.total_cents)}
            for day in metrics.daily_totals
        ],
        "recentExpenses": [expense_payload(e) for e in metrics.recent_expenses],
    }


@app.get("/api/health")
def health():
    return {"status": "ok"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
