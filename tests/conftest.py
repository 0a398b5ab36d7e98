import os
import tempfile

os.environ.setdefault("EXPENSES_DATA_DIR", tempfile.mkdtemp(prefix="expenses-test-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models  # noqa: E402,F401
from auth import hash_password  # noqa: E402
from database import Base, create_db_engine, get_db  # noqa: E402
from main import app  # noqa: E402
from models import User  # noqa: E402
from rate_limit import SlidingWindowRateLimiter  # noqa: E402
from services import CategoryService  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "ChangeMe123!"
MUTATION_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with factory() as session:
        session.add(User(email=ADMIN_EMAIL, password_hash=hash_password(ADMIN_PASSWORD)))
        session.commit()
        CategoryService(session).reserved()
    yield factory
    engine.dispose()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.login_limiter = SlidingWindowRateLimiter(10, 15 * 60)
    test_client = TestClient(app, headers=MUTATION_HEADERS)
    yield test_client
    test_client.close()
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client):
    response = client.post(
        "/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    return client
