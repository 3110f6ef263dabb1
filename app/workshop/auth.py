from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, redirect, render_template, request, session, url_for
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.workshop.audit import record_event
from app.workshop.db import db_session
from app.workshop.models import User
from app.workshop.rbac import login_redirect
from app.workshop.utils import halt, safe_redirect_target

bp = Blueprint("auth", __name__)
logger = logging.getLogger(__name__)

_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

# Paths served without a session.
PUBLIC_PATHS = ("/login", "/healthz")


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    recent = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
    if not recent:
        # Drop idle addresses so the table only holds the current window.
        _login_attempts.pop(ip, None)
        return False
    _login_attempts[ip] = recent
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def authenticate(s: Session, email: str, password: str) -> User | None:
    email = (email or "").strip().lower()
    if not email or not password:
        return None
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not check_password_hash(user.password_hash, password):
        return None
    return user


def set_password(user: User, password: str) -> None:
    user.password_hash = generate_password_hash(password)


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith("/static/"):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    user = db_session().get(User, int(user_id))
    if not user:
        # Account deleted since login.
        session.pop("user_id", None)
        return
    g.current_user = user


def require_login():
    """Every page except the login form needs a session user."""
    if request.path.startswith("/static/") or request.path in PUBLIC_PATHS:
        return None
    if getattr(g, "current_user", None) is None:
        return login_redirect()
    return None


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("auth.logout"))
    failed = request.args.get("failed") == "1"
    nxt = safe_redirect_target(request.args.get("redirect"))
    return render_template("auth/login.html", failed=failed, redirect_target=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = safe_redirect_target(request.form.get("redirect"))
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        logger.warning("Login rate limit hit (ip=%s)", ip)
        return render_template("auth/login.html", failed=True, rate_limited=True, redirect_target=nxt), 429

    _record_attempt(ip)

    s = db_session()
    user = authenticate(s, email, password)
    if user is None:
        logger.warning("Failed login (email=%s ip=%s)", email, ip)
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            metadata={"email": email},
        )
        s.commit()
        return redirect(url_for("auth.login_get", failed=1, redirect=nxt))

    session.clear()
    session["user_id"] = user.id
    session.permanent = True
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return redirect(nxt)


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))


@bp.get("/change_password")
def change_password_get():
    return render_template("auth/change_password.html")


@bp.post("/change_password")
def change_password_post():
    s = db_session()
    user: User = g.current_user

    password = request.form.get("password") or ""
    old_password = request.form.get("old_password") or ""
    if not password:
        halt("Missing password.")
    if authenticate(s, user.email, old_password) is None:
        halt("Invalid old password.")

    set_password(user, password)
    record_event(s, actor=user, action="user.password_change", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Password changed (user_id=%s)", user.id)
    return redirect(url_for("routes.index"))
