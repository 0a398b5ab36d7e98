import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        session_secret: str,
        session_max_age_days: int,
        session_cookie: str,
        cookie_secure: bool,
        login_max_attempts: int,
        login_window_secs: int,
        cors_origins: list[str],
        admin_email: str,
        admin_password: str,
    ) -> None:
        self.database_url = database_url
        self.session_secret = session_secret
        self.session_max_age_days = session_max_age_days
        self.session_cookie = session_cookie
        self.cookie_secure = cookie_secure
        self.login_max_attempts = login_max_attempts
        self.login_window_secs = login_window_secs
        self.cors_origins = cors_origins
        self.admin_email = admin_email
        self.admin_password = admin_password

    @property
    def session_max_age_secs(self) -> int:
        return self.session_max_age_days * 24 * 3600


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    session_secret = os.getenv(
        "EXPENSES_SESSION_SECRET",
        "5c0f1d2b9e8a47c3b6d4f7a1e2c9b8d3a6f5e4c7b1d2a9e8f3c6b5a4d7e1f2c9",
    )
    session_max_age_days = int(os.getenv("EXPENSES_SESSION_MAX_AGE_DAYS", "7"))
    session_cookie = os.getenv("EXPENSES_SESSION_COOKIE", "expensetracker_token")
    cookie_secure = _env_flag("EXPENSES_COOKIE_SECURE")
    login_max_attempts = int(os.getenv("EXPENSES_LOGIN_MAX_ATTEMPTS", "10"))
    login_window_secs = int(os.getenv("EXPENSES_LOGIN_WINDOW_SECS", "900"))
    cors_origins = [
        origin.strip()
        for origin in os.getenv("EXPENSES_CORS_ORIGINS", "").split(",")
        if origin.strip()
    ]
    admin_email = os.getenv("EXPENSES_ADMIN_EMAIL", "admin@example.com")
    admin_password = os.getenv("EXPENSES_ADMIN_PASSWORD", "ChangeMe123!")
    return Settings(
        database_url=database_url,
        session_secret=session_secret,
        session_max_age_days=session_max_age_days,
        session_cookie=session_cookie,
        cookie_secure=cookie_secure,
        login_max_attempts=login_max_attempts,
        login_window_secs=login_window_secs,
        cors_origins=cors_origins,
        admin_email=admin_email,
        admin_password=admin_password,
    )
