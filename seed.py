import argparse
import logging
import random
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config import get_settings
from database import run_migrations, session_scope
from models import Category, Expense, PaymentMethod
from services import AuthService, CategoryService, normalize_category_name

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    "groceries",
    "dining",
    "transportation",
    "utilities",
    "entertainment",
    "shopping",
    "healthcare",
    "travel",
]

SAMPLE_MERCHANTS = {
    "groceries": ["Whole Foods", "Trader Joes", "Safeway", "Costco", "Target"],
    "dining": ["Chipotle", "Starbucks", "Local Cafe", "Pizza Hut", "Thai Kitchen"],
    "transportation": ["Shell Gas", "Uber", "Lyft", "Public Transit", "Parking Garage"],
    "utilities": ["Electric Company", "Water Utility", "Internet Provider", "Gas Company"],
    "entertainment": ["Netflix", "Spotify", "Movie Theater", "Concert Venue", "Bowling Alley"],
    "shopping": ["Amazon", "Best Buy", "Nike Store", "IKEA", "Home Depot"],
    "healthcare": ["CVS Pharmacy", "Doctor Visit", "Dentist", "Eye Care", "Gym"],
    "travel": ["Hotel Stay", "Airbnb", "Flight", "Car Rental", "Travel Insurance"],
}

SAMPLE_DESCRIPTIONS = {
    "groceries": ["Weekly groceries", "Snacks", "Produce", "Pantry items", None],
    "dining": ["Lunch", "Dinner", "Coffee", "Takeout", None],
    "transportation": ["Fuel", "Ride to airport", "Monthly pass", "Parking", None],
    "utilities": ["Monthly bill", "Quarterly payment", None],
    "entertainment": ["Subscription", "Movie night", "Weekend fun", None],
    "shopping": ["Online order", "Home supplies", "Clothes", "Electronics", None],
    "healthcare": ["Prescription", "Checkup", "Vitamins", None],
    "travel": ["Business trip", "Vacation", "Weekend getaway", None],
}

PAYMENT_CHOICES: list[Optional[PaymentMethod]] = [*PaymentMethod, None]


def seed_categories(session: Session) -> dict[str, Category]:
    reserved = CategoryService(session).reserved()
    by_name = {reserved.name: reserved}
    for name in DEFAULT_CATEGORIES:
        normalized = normalize_category_name(name)
        category = session.scalar(select(Category).where(Category.name == normalized))
        if category is None:
            category = Category(name=normalized, is_reserved=False)
            session.add(category)
            session.flush()
            logger.info(f"seed: created category name={normalized}")
        by_name[normalized] = category
    session.commit()
    return by_name


def seed_sample_expenses(
    session: Session,
    categories: dict[str, Category],
    count: int,
    *,
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> int:
    existing = session.execute(select(func.count(Expense.id))).scalar_one()
    if existing:
        logger.info(f"seed: {existing} expenses already exist, skipping samples")
        return 0
    today = today or date.today()
    rng = rng or random.Random()
    names = [name for name in DEFAULT_CATEGORIES if name in categories]
    for _ in range(count):
        name = rng.choice(names)
        session.add(
            Expense(
                amount_cents=rng.randint(500, 19_999),
                date=today - timedelta(days=rng.randrange(90)),
                merchant=rng.choice(SAMPLE_MERCHANTS[name]),
                description=rng.choice(SAMPLE_DESCRIPTIONS[name]),
                payment_method=rng.choice(PAYMENT_CHOICES),
                category_id=categories[name].id,
            )
        )
    session.commit()
    logger.info(f"seed: created {count} sample expenses")
    return count


def seed(session: Session, *, sample: bool = False, sample_count: int = 80) -> None:
    settings = get_settings()
    user, created = AuthService(session).ensure_user(
        settings.admin_email, settings.admin_password
    )
    if created:
        logger.info(f"seed: created admin user email={user.email}")
    else:
        logger.info(f"seed: admin user already exists email={user.email}")
    categories = seed_categories(session)
    if sample:
        seed_sample_expenses(session, categories, sample_count)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Create the admin user and default categories, optionally with sample expenses."
    )
    parser.add_argument(
        "--sample", action="store_true", help="Insert random sample expenses when none exist"
    )
    parser.add_argument(
        "--sample-count", type=int, default=80, help="Number of sample expenses (default: 80)"
    )
    parser.add_argument(
        "--skip-migrations", action="store_true", help="Do not run alembic upgrade first"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    if not args.skip_migrations:
        run_migrations()
    with session_scope() as session:
        seed(session, sample=args.sample, sample_count=args.sample_count)
    logger.info("seed: complete")


if __name__ == "__main__":
    main()
