from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from database import Base, create_db_engine
from periods import resolve_month
from schemas import CategoryIn, ExpenseIn
from services import CategoryService, ExpenseService, MetricsService


def make_session() -> Session:
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine, expire_on_commit=False)


def spend(session: Session, category_id: int, amount: str, on: date) -> None:
    ExpenseService(session).create(
        ExpenseIn(amount=Decimal(amount), date=on, categoryId=category_id)
    )


def test_month_summary_food_and_transport() -> None:
    with make_session() as session:
        categories = CategoryService(session)
        categories.reserved()
        food = categories.create(CategoryIn(name="Food"))
        transport = categories.create(CategoryIn(name="Transport"))
        spend(session, food.id, "50", date(2025, 4, 2))
        spend(session, food.id, "30", date(2025, 4, 10))
        spend(session, transport.id, "20", date(2025, 4, 10))

        metrics = MetricsService(session).month_summary(resolve_month("2025-04"))

        assert metrics.total_cents == 10_000
        assert metrics.avg_per_day_cents == 333
        assert metrics.top_category is not None
        assert metrics.top_category.name == "food"
        assert metrics.top_category.total_cents == 8_000
        assert [(c.name, c.total_cents, c.percentage) for c in metrics.category_breakdown] == [
            ("food", 8_000, 80),
            ("transport", 2_000, 20),
        ]
        assert [e.amount_cents for e in metrics.recent_expenses] == [2000, 3000, 5000]


def test_daily_totals_cover_every_day_and_sum_to_total() -> None:
    with make_session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        spend(session, food.id, "1.25", date(2024, 2, 1))
        spend(session, food.id, "2.50", date(2024, 2, 1))
        spend(session, food.id, "9.99", date(2024, 2, 29))
        spend(session, food.id, "100", date(2024, 3, 1))
        spend(session, food.id, "100", date(2024, 1, 31))

        metrics = MetricsService(session).month_summary(resolve_month("2024-02"))

        days = metrics.daily_totals
        assert len(days) == 29
        assert [d.date for d in days] == sorted(d.date for d in days)
        assert days[0].date == date(2024, 2, 1)
        assert days[-1].date == date(2024, 2, 29)
        assert days[0].total_cents == 375
        assert days[1].total_cents == 0
        assert days[-1].total_cents == 999
        assert sum(d.total_cents for d in days) == metrics.total_cents == 1374


def test_empty_month_has_no_top_category() -> None:
    with make_session() as session:
        CategoryService(session).create(CategoryIn(name="Food"))

        metrics = MetricsService(session).month_summary(resolve_month("2023-02"))

        assert metrics.total_cents == 0
        assert metrics.avg_per_day_cents == 0
        assert metrics.top_category is None
        assert metrics.category_breakdown == []
        assert len(metrics.daily_totals) == 28
        assert all(d.total_cents == 0 for d in metrics.daily_totals)
        assert metrics.recent_expenses == []


def test_top_category_ties_break_on_category_id() -> None:
    with make_session() as session:
        categories = CategoryService(session)
        zebra = categories.create(CategoryIn(name="Zebra"))
        apple = categories.create(CategoryIn(name="Apple"))
        spend(session, apple.id, "10", date(2025, 5, 1))
        spend(session, zebra.id, "10", date(2025, 5, 2))

        metrics = MetricsService(session).month_summary(resolve_month("2025-05"))

        assert metrics.top_category.id == zebra.id
        assert [c.id for c in metrics.category_breakdown] == [zebra.id, apple.id]
        assert [c.percentage for c in metrics.category_breakdown] == [50, 50]


def test_percentages_round_independently() -> None:
    with make_session() as session:
        categories = CategoryService(session)
        ids = [categories.create(CategoryIn(name=n)).id for n in ["a", "b", "c"]]
        for category_id in ids:
            spend(session, category_id, "1", date(2025, 6, 1))

        breakdown = MetricsService(session).category_breakdown(resolve_month("2025-06"))

        assert [c.percentage for c in breakdown] == [33, 33, 33]


def test_average_per_day_rounds_half_up_in_cents() -> None:
    with make_session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        # 465 cents over 30 days = 15.5 cents/day
        spend(session, food.id, "4.65", date(2025, 6, 3))

        metrics = MetricsService(session).month_summary(resolve_month("2025-06"))

        assert metrics.avg_per_day_cents == 16


def test_recent_expenses_are_limited_to_month_and_ten_items() -> None:
    with make_session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        for day in range(1, 15):
            spend(session, food.id, str(day), date(2025, 7, day))
        spend(session, food.id, "500", date(2025, 8, 1))

        recent = MetricsService(session).month_summary(
            resolve_month("2025-07")
        ).recent_expenses

        assert len(recent) == 10
        assert recent[0].date == date(2025, 7, 14)
        assert recent[-1].date == date(2025, 7, 5)
