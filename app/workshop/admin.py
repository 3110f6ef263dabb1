"""
User account management (administrators only).
"""
from __future__ import annotations

import logging

from flask import Blueprint, g, redirect, render_template, request, url_for
from sqlalchemy.orm import Session

from app.workshop.audit import record_event
from app.workshop.auth import set_password
from app.workshop.db import db_session
from app.workshop.models import User
from app.workshop.rbac import PERMISSION_MAP, require_capability
from app.workshop.utils import halt, parse_id

bp = Blueprint("admin", __name__)
logger = logging.getLogger(__name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_user_or_halt(user_id: str) -> User:
    uid = parse_id(user_id)
    user = db_session().get(User, uid) if uid is not None else None
    if user is None:
        halt("Invalid user.")
    return user


def _email_taken(s: Session, email: str, exclude_id: int | None = None) -> bool:
    q = s.query(User).filter(User.email == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return s.query(q.exists()).scalar()


def validate_new_user(s: Session, form: dict) -> str | None:
    """First failing check wins, in form order."""
    email = form.get("email") or ""
    if not email:
        return "Missing email."
    if _email_taken(s, email):
        return f"User {email} already exists."
    if not form.get("first_name"):
        return "Missing first name."
    if not form.get("last_name"):
        return "Missing last name."
    if not form.get("password"):
        return "Missing password."
    if not form.get("permission"):
        return "Missing permission."
    if form["permission"] not in PERMISSION_MAP:
        return "Invalid permission."
    return None


# ---------- List ----------
@bp.get("/users")
@require_capability("administer")
def users_list():
    s = db_session()
    users = s.query(User).order_by(User.last_name.asc(), User.first_name.asc()).all()
    return render_template("users/list.html", users=users, permissions=PERMISSION_MAP)


# ---------- New ----------
@bp.get("/new_user")
@require_capability("administer")
def user_new_get():
    return render_template("users/new.html", permissions=PERMISSION_MAP)


@bp.post("/users")
@require_capability("administer")
def user_new_post():
    s = db_session()
    u = _current_user()

    form = {
        "email": (request.form.get("email") or "").strip().lower(),
        "first_name": (request.form.get("first_name") or "").strip(),
        "last_name": (request.form.get("last_name") or "").strip(),
        "password": request.form.get("password") or "",
        "permission": (request.form.get("permission") or "").strip(),
    }
    error = validate_new_user(s, form)
    if error:
        halt(error)

    new_user = User(
        email=form["email"],
        first_name=form["first_name"],
        last_name=form["last_name"],
        permission=form["permission"],
    )
    set_password(new_user, form["password"])
    s.add(new_user)
    s.flush()

    record_event(
        s,
        actor=u,
        action="user.create",
        entity_type="User",
        entity_id=str(new_user.id),
        metadata={"email": new_user.email, "permission": new_user.permission},
    )
    s.commit()
    logger.info("User created (id=%s email=%s)", new_user.id, new_user.email)
    return redirect(url_for("admin.users_list"))


# ---------- Edit ----------
@bp.get("/users/<user_id>/edit")
@require_capability("administer")
def user_edit_get(user_id: str):
    user = _get_user_or_halt(user_id)
    return render_template("users/edit.html", user_edit=user, permissions=PERMISSION_MAP)


@bp.post("/users/<user_id>/edit")
@require_capability("administer")
def user_edit_post(user_id: str):
    s = db_session()
    u = _current_user()
    user = _get_user_or_halt(user_id)

    before = {"email": user.email, "first_name": user.first_name, "last_name": user.last_name, "permission": user.permission}

    email = request.form.get("email")
    if email is not None:
        email = email.strip().lower()
        if not email:
            halt("Missing email.")
        if _email_taken(s, email, exclude_id=user.id):
            halt(f"User {email} already exists.")
    permission = request.form.get("permission")
    if permission is not None and permission not in PERMISSION_MAP:
        halt("Invalid permission.")

    if email is not None:
        user.email = email
    if request.form.get("first_name") is not None:
        user.first_name = request.form["first_name"].strip()
    if request.form.get("last_name") is not None:
        user.last_name = request.form["last_name"].strip()
    password = request.form.get("password") or ""
    if password:
        set_password(user, password)
    if permission is not None:
        user.permission = permission

    after = {"email": user.email, "first_name": user.first_name, "last_name": user.last_name, "permission": user.permission}
    record_event(
        s,
        actor=u,
        action="user.update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": before, "after": after, "password_reset": bool(password)},
    )
    s.commit()
    return redirect(url_for("admin.users_list"))


# ---------- Delete ----------
@bp.get("/users/<user_id>/delete")
@require_capability("administer")
def user_delete_get(user_id: str):
    user = _get_user_or_halt(user_id)
    return render_template("users/delete.html", user_delete=user)


@bp.post("/users/<user_id>/delete")
@require_capability("administer")
def user_delete_post(user_id: str):
    s = db_session()
    u = _current_user()
    user = _get_user_or_halt(user_id)
    if user.id == u.id:
        halt("You cannot delete your own account.")

    record_event(
        s,
        actor=u,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )
    s.delete(user)
    s.commit()
    logger.info("User deleted (id=%s email=%s)", user.id, user.email)
    return redirect(url_for("admin.users_list"))
