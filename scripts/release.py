"""
Release step for AgencyOps, run once per deploy before the web workers start.

Upgrades the schema to the newest Alembic revision, then runs the idempotent seed from
scripts/init_db.py: the nine default pages, one role permission row per role and page, the
USD to BDT exchange rate and the super admin named by ADMIN_USERNAME. Re-running it never
overwrites an existing admin password or a permission edited in the admin panel.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_DEFAULT_ADMIN_PASSWORD = "change-me"


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def _check_production(env: str, db_url: str) -> None:
    if env not in ("prod", "production"):
        return
    if db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production. Set DATABASE_URL to Postgres.")
    if (os.environ.get("ADMIN_PASSWORD") or _DEFAULT_ADMIN_PASSWORD) == _DEFAULT_ADMIN_PASSWORD:
        print("WARNING: ADMIN_PASSWORD is not set; a new super admin would get the default password.", flush=True)


def run_release() -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    _check_production(env, db_url)

    print(f"=== agencyops release (ENV={env or 'unset'}) ===", flush=True)

    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")
    print("Schema at head.", flush=True)

    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("=== agencyops release done ===", flush=True)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
