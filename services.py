from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from auth import dummy_password_hash, hash_password, verify_password
from errors import (
    Duplicate,
    Forbidden,
    InvalidCategory,
    InvalidCredentials,
    NotFound,
)
from models import RESERVED_CATEGORY_NAME, Category, Expense, User, utcnow
from money import div_round_half_up, format_currency
from periods import Period
from schemas import CategoryIn, ExpenseIn

logger = logging.getLogger(__name__)

PAGE_SIZE = 20
RECENT_LIMIT = 10

_NEWEST_FIRST = (Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc())


def normalize_category_name(name: str) -> str:
    return name.strip().lower()


def display_name(name: str) -> str:
    return re.sub(
        r"\w\S*", lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), name
    )


def _like_pattern(text: str) -> str:
    escaped = (
        text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def authenticate(self, email: str, password: str) -> User:
        user = self.session.scalar(select(User).where(User.email == email))
        if user is None:
            verify_password(password, dummy_password_hash())
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()
        return user

    def ensure_user(self, email: str, password: str) -> tuple[User, bool]:
        existing = self.session.scalar(select(User).where(User.email == email))
        if existing:
            return existing, False
        user = User(email=email, password_hash=hash_password(password))
        self.session.add(user)
        self.session.commit()
        return user, True


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def reserved(self) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.is_reserved.is_(True))
        )
        if category:
            return category
        category = self.session.scalar(
            select(Category).where(Category.name == RESERVED_CATEGORY_NAME)
        )
        if category is None:
            category = Category(name=RESERVED_CATEGORY_NAME, is_reserved=True)
            self.session.add(category)
        else:
            category.is_reserved = True
        self.session.commit()
        logger.info(f"category_reserved_ensured: id={category.id}")
        return category

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.name, Category.id)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if category is None:
            raise NotFound("Category not found")
        return category

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Category.id).where(Category.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        return self.session.scalar(stmt) is not None

    def _commit_unique(self, message: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Duplicate(message) from exc

    def create(self, data: CategoryIn) -> Category:
        name = normalize_category_name(data.name)
        if self._name_taken(name):
            raise Duplicate("Category already exists")
        category = Category(name=name, is_reserved=False)
        self.session.add(category)
        self._commit_unique("Category already exists")
        logger.info(f"category_created: id={category.id} name={name}")
        return category

    def rename(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        if category.is_reserved:
            raise Forbidden("Cannot rename the uncategorized category")
        name = normalize_category_name(data.name)
        if self._name_taken(name, exclude_id=category.id):
            raise Duplicate("Category name already exists")
        old_name = category.name
        category.name = name
        self._commit_unique("Category name already exists")
        logger.info(f"category_renamed: id={category.id} from={old_name} to={name}")
        return category

    def delete(self, category_id: int) -> int:
        """Delete a category, moving its expenses to the reserved category.

        Reassignment and removal share one transaction; on any failure both
        are rolled back. Returns the number of reassigned expenses.
        """
        category = self.get(category_id)
        if category.is_reserved:
            raise Forbidden("Cannot delete the uncategorized category")
        fallback = self.reserved()
        try:
            result = self.session.execute(
                update(Expense)
                .where(Expense.category_id == category.id)
                .values(category_id=fallback.id)
            )
            reassigned = int(result.rowcount or 0)
            self.session.delete(category)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"category_deleted: id={category_id} reassigned={reassigned} to={fallback.id}"
        )
        return reassigned


@dataclass
class ExpenseFilters:
    month: Optional[Period] = None
    category_id: Optional[int] = None
    query: Optional[str] = None


@dataclass
class ExpensePage:
    items: list[Expense]
    page: int
    total: int
    page_size: int = PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class ExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _category_for(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if category is None:
            raise InvalidCategory("Category not found")
        return category

    def create(self, data: ExpenseIn) -> Expense:
        category = self._category_for(data.category_id)
        expense = Expense(
            amount_cents=data.amount_cents,
            date=data.date,
            merchant=data.merchant,
            description=data.description,
            payment_method=data.payment_method,
            category=category,
        )
        self.session.add(expense)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"expense_created: id={expense.id} amount={format_currency(expense.amount_cents)} "
            f"category={category.id}"
        )
        return expense

    def get(self, expense_id: int) -> Expense:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.id == expense_id)
        )
        expense = self.session.scalar(stmt)
        if expense is None:
            raise NotFound("Expense not found")
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        category = self._category_for(data.category_id)
        expense.amount_cents = data.amount_cents
        expense.date = data.date
        expense.merchant = data.merchant
        expense.description = data.description
        expense.payment_method = data.payment_method
        expense.category = category
        expense.updated_at = utcnow()
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(f"expense_updated: id={expense.id}")
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.session.get(Expense, expense_id)
        if expense is None:
            raise NotFound("Expense not found")
        self.session.delete(expense)
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id}")

    def _apply_filters(self, stmt, filters: ExpenseFilters):
        if filters.month:
            stmt = stmt.where(
                Expense.date.between(filters.month.start, filters.month.end)
            )
        if filters.category_id is not None:
            stmt = stmt.where(Expense.category_id == filters.category_id)
        if filters.query:
            like = _like_pattern(filters.query)
            stmt = stmt.where(
                or_(
                    func.lower(func.coalesce(Expense.merchant, "")).like(
                        like, escape="\\"
                    ),
                    func.lower(func.coalesce(Expense.description, "")).like(
                        like, escape="\\"
                    ),
                )
            )
        return stmt

    def list(
        self, filters: ExpenseFilters, page: int = 1, page_size: int = PAGE_SIZE
    ) -> ExpensePage:
        page = max(page, 1)
        count_stmt = self._apply_filters(
            select(func.count(Expense.id)), filters
        )
        total = int(self.session.execute(count_stmt).scalar_one() or 0)
        stmt = (
            self._apply_filters(
                select(Expense).options(joinedload(Expense.category)), filters
            )
            .order_by(*_NEWEST_FIRST)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = list(self.session.scalars(stmt).all())
        return ExpensePage(items=items, page=page, total=total, page_size=page_size)

    def recent(self, period: Period, limit: int = RECENT_LIMIT) -> list[Expense]:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.date.between(period.start, period.end))
            .order_by(*_NEWEST_FIRST)
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())


@dataclass(frozen=True)
class CategoryTotal:
    id: int
    name: str
    total_cents: int
    percentage: int


@dataclass(frozen=True)
class DailyTotal:
    date: date
    total_cents: int


@dataclass
class MonthlyMetrics:
    period: Period
    total_cents: int
    avg_per_day_cents: int
    top_category: Optional[CategoryTotal]
    category_breakdown: list[CategoryTotal] = field(default_factory=list)
    daily_totals: list[DailyTotal] = field(default_factory=list)
    recent_expenses: list[Expense] = field(default_factory=list)


class MetricsService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def total_spend(self, period: Period) -> int:
        stmt = select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
            Expense.date.between(period.start, period.end)
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def category_breakdown(
        self, period: Period, total_cents: Optional[int] = None
    ) -> list[CategoryTotal]:
        stmt = (
            select(
                Category.id.label("id"),
                Category.name.label("name"),
                func.coalesce(func.sum(Expense.amount_cents), 0).label("total"),
            )
            .select_from(Expense)
            .join(Category, Category.id == Expense.category_id)
            .where(Expense.date.between(period.start, period.end))
            .group_by(Category.id, Category.name)
        )
        rows = [row for row in self.session.execute(stmt).all() if int(row.total) > 0]
        if total_cents is None:
            total_cents = sum(int(row.total) for row in rows)
        rows.sort(key=lambda row: (-int(row.total), row.id))
        return [
            CategoryTotal(
                id=row.id,
                name=row.name,
                total_cents=int(row.total),
                percentage=div_round_half_up(int(row.total) * 100, total_cents)
                if total_cents
                else 0,
            )
            for row in rows
        ]

    def daily_totals(self, period: Period) -> list[DailyTotal]:
        stmt = (
            select(Expense.date, func.sum(Expense.amount_cents).label("total"))
            .where(Expense.date.between(period.start, period.end))
            .group_by(Expense.date)
        )
        by_day = {row.date: int(row.total or 0) for row in self.session.execute(stmt)}
        return [DailyTotal(day, by_day.get(day, 0)) for day in period.iter_days()]

    def month_summary(self, period: Period) -> MonthlyMetrics:
        total = self.total_spend(period)
        breakdown = self.category_breakdown(period, total)
        return MonthlyMetrics(
            period=period,
            total_cents=total,
            avg_per_day_cents=div_round_half_up(total, period.days),
            top_category=breakdown[0] if breakdown else None,
            category_breakdown=breakdown,
            daily_totals=self.daily_totals(period),
            recent_expenses=ExpenseService(self.session).recent(period),
        )
