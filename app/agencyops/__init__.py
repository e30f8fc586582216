import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from app.agencyops.auth import bp as auth_bp, load_current_user
from app.agencyops.config import load_config
from app.agencyops.db import init_db, teardown_db_session
from app.agencyops.routes import bp as routes_bp
from app.agencyops.utils import InvalidPayload
from app.agencyops.modules.ad_accounts.admin import bp as ad_accounts_bp
from app.agencyops.modules.campaigns.admin import bp as campaigns_bp
from app.agencyops.modules.clients.admin import bp as clients_bp
from app.agencyops.modules.data_transfer.admin import bp as data_transfer_bp
from app.agencyops.modules.employees.admin import bp as employees_bp
from app.agencyops.modules.finance.admin import bp as finance_bp
from app.agencyops.modules.permissions.admin import bp as permissions_bp
from app.agencyops.modules.salaries.admin import bp as salaries_bp
from app.agencyops.modules.tags.admin import bp as tags_bp
from app.agencyops.modules.telegram.admin import bp as telegram_bp
from app.agencyops.modules.users.admin import bp as users_bp
from app.agencyops.modules.work_reports.admin import bp as work_reports_bp

API_BLUEPRINTS = (
    users_bp,
    permissions_bp,
    clients_bp,
    ad_accounts_bp,
    campaigns_bp,
    work_reports_bp,
    finance_bp,
    tags_bp,
    employees_bp,
    salaries_bp,
    telegram_bp,
    data_transfer_bp,
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    for bp in API_BLUEPRINTS:
        app.register_blueprint(bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e):  # type: ignore[no-redef]
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if e.code == 413:
            limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
            return {"message": f"File too large. Maximum size is {limit_mb}MB."}, 413
        return {"message": e.description or e.name}, e.code

    @app.errorhandler(InvalidPayload)
    def _err_payload(e):  # type: ignore[no-redef]
        return {"message": "Invalid input", "errors": [str(e)]}, 400

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return {"message": "Internal server error", "requestId": rid}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
