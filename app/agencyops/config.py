import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    session_ttl_hours: int
    telegram_api_base: str
    max_upload_mb: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
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
        database_url=_getenv("DATABASE_URL", "sqlite:///agencyops.db"),
        session_ttl_hours=_getenv_int("SESSION_TTL_HOURS", 24),
        telegram_api_base=_getenv("TELEGRAM_API_BASE", "https://api.telegram.org"),
        max_upload_mb=_getenv_int("MAX_UPLOAD_MB", 25),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SESSION_TTL_HOURS": s.session_ttl_hours,
        "TELEGRAM_API_BASE": s.telegram_api_base,
        # CSV / JSON import uploads
        "MAX_CONTENT_LENGTH": s.max_upload_mb * 1024 * 1024,
    }
