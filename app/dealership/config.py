import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    csrf_enabled: bool
    cars_per_page: int

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("prod", "production")


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///dealership.db"),
        csrf_enabled=_getenv("CSRF_ENABLED", "1") != "0",
        cars_per_page=max(1, _getint("CARS_PER_PAGE", 9)),
    )


def check_production(s: Settings) -> None:
    """Refuse to boot a production app on sqlite or the placeholder secret."""
    if not s.is_production:
        return
    if not s.database_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if s.database_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point at Postgres in production, not sqlite.")
    if s.secret_key in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production.")


def load_config() -> dict:
    s = load_settings()
    check_production(s)
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "CSRF_ENABLED": s.csrf_enabled,
        "CARS_PER_PAGE": s.cars_per_page,
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": s.is_production,
        # forms only; no uploads
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
