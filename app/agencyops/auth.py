from __future__ import annotations

import secrets
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.agencyops.audit import record_event
from app.agencyops.constants import SESSION_TTL_HOURS
from app.agencyops.db import db_session
from app.agencyops.models import User, UserSession
from app.agencyops.rbac import require_auth
from app.agencyops.utils import as_text, json_body

bp = Blueprint("auth", __name__)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts = _attempts()
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _attempts()[ip].append(datetime.utcnow())


def public_user(user: User) -> dict:
    return {"id": user.id, "username": user.username, "role": user.role, "name": user.name}


def validate_credentials(s: Session, username: str, password: str) -> User | None:
    user = s.query(User).filter(User.username == username).one_or_none()
    if not user or not user.is_active:
        return None
    if not check_password_hash(user.password, password):
        return None
    return user


def create_session(s: Session, user: User, *, now: datetime | None = None, ttl_hours: int | None = None) -> UserSession:
    """Issue a new random bearer token valid for ttl_hours (24 by default)."""
    now = now or datetime.utcnow()
    hours = ttl_hours if ttl_hours is not None else SESSION_TTL_HOURS
    sess = UserSession(
        user_id=user.id,
        token=secrets.token_urlsafe(32),
        created_at=now,
        expires_at=now + timedelta(hours=hours),
    )
    s.add(sess)
    s.flush()
    return sess


def get_session_by_token(s: Session, token: str, *, now: datetime | None = None) -> UserSession | None:
    """
    Resolve a token to its session. Expired rows are deleted on lookup.
    """
    sess = s.query(UserSession).filter(UserSession.token == token).one_or_none()
    if not sess:
        return None
    now = now or datetime.utcnow()
    if sess.expires_at <= now:
        s.delete(sess)
        s.commit()
        return None
    return sess


def delete_session(s: Session, token: str) -> None:
    s.query(UserSession).filter(UserSession.token == token).delete(synchronize_session=False)


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def load_current_user() -> None:
    """
    Loads g.current_user from the bearer token in the Authorization header.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_error = None
    g.auth_token = None

    token = _bearer_token()
    if not token:
        g.auth_error = "Unauthorized"
        return

    s = db_session()
    sess = get_session_by_token(s, token)
    if not sess or not sess.user or not sess.user.is_active:
        g.auth_error = "Invalid or expired session"
        return
    g.current_user = sess.user
    g.auth_token = token


@bp.post("/login")
def login():
    payload = json_body()
    username = as_text(payload.get("username"))
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    errors = []
    if not username:
        errors.append("Username is required")
    if not password:
        errors.append("Password is required")
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400

    if _check_rate_limit(ip):
        return {"message": "Too many login attempts. Please wait 5 minutes."}, 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = validate_credentials(s, username, password)
        if not user:
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=username,
                reason="Invalid credentials",
                metadata={"username": username},
            )
            s.commit()
            return {"message": "Invalid username or password"}, 401

        sess = create_session(s, user, ttl_hours=current_app.config.get("SESSION_TTL_HOURS"))
        _attempts()[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=user.id)
        s.commit()
        return {"user": public_user(user), "token": sess.token, "expiresAt": sess.expires_at.isoformat()}
    except Exception:
        current_app.logger.exception("Login crashed (username=%s request_id=%s)", username, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
@require_auth
def logout():
    s = db_session()
    user = g.current_user
    delete_session(s, g.auth_token)
    record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
    s.commit()
    return {"message": "Logged out successfully"}


@bp.get("/user")
@require_auth
def current_user():
    return public_user(g.current_user)
