import os
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.agencyops.constants import DEFAULT_EXCHANGE_RATE, EXCHANGE_RATE_KEY, ROLE_SUPER_ADMIN
from app.agencyops.models import User
from app.agencyops.modules.finance.models import FinanceSetting
from app.agencyops.modules.permissions.service import seed_default_permissions


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed(s: Session, *, admin_username: str, admin_password: str) -> User:
    """
    Default pages, role permission matrix, exchange rate and the super admin account.
    Idempotent: existing rows (and an existing admin's password) are never overwritten.
    """
    seed_default_permissions(s)

    if not s.query(FinanceSetting).filter(FinanceSetting.key == EXCHANGE_RATE_KEY).one_or_none():
        now = datetime.utcnow()
        s.add(
            FinanceSetting(
                key=EXCHANGE_RATE_KEY,
                value=str(DEFAULT_EXCHANGE_RATE),
                description="USD to BDT conversion rate",
                created_at=now,
                updated_at=now,
            )
        )

    user = s.query(User).filter(User.username == admin_username).one_or_none()
    if not user:
        user = User(
            name="Admin",
            username=admin_username,
            password=generate_password_hash(admin_password),
            role=ROLE_SUPER_ADMIN,
            is_active=True,
        )
        s.add(user)
    s.flush()
    return user


def seed_only(*, database_url: str | None = None) -> None:
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///agencyops.db").strip()

    # Direct engine/session so release can seed without importing app.wsgi.
    with _session_scope(db_url) as s:
        seed(s, admin_username=admin_username, admin_password=admin_password)

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
