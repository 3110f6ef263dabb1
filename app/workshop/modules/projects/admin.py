from __future__ import annotations

from flask import Blueprint, g, redirect, render_template, request, url_for

from app.workshop.db import db_session
from app.workshop.models import User
from app.workshop.modules.parts.service import STATUS_MAP, parts_by_status, part_tree
from app.workshop.modules.projects.models import Project
from app.workshop.modules.projects.service import (
    create_project,
    delete_project,
    update_project,
    validate_project_payload,
)
from app.workshop.rbac import require_capability
from app.workshop.utils import halt, parse_id

bp = Blueprint("projects", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_project_or_halt(project_id: str) -> Project:
    # Non-numeric and out-of-range ids are treated like unknown ones.
    pid = parse_id(project_id)
    project = db_session().get(Project, pid) if pid is not None else None
    if project is None:
        halt("Invalid project.")
    return project


def _project_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "part_number_prefix": request.form.get("part_number_prefix"),
    }


# ---------- List ----------
@bp.get("/projects")
def projects_list():
    s = db_session()
    projects = s.query(Project).order_by(Project.name.asc()).all()
    return render_template("projects/list.html", projects=projects)


@bp.get("/dashboards")
def dashboards():
    s = db_session()
    projects = s.query(Project).order_by(Project.name.asc()).all()
    return render_template("projects/dashboards.html", projects=projects)


# ---------- New ----------
@bp.get("/new_project")
@require_capability("administer")
def project_new_get():
    return render_template("projects/new.html")


@bp.post("/projects")
@require_capability("administer")
def project_new_post():
    s = db_session()
    payload = _project_payload()

    error = validate_project_payload(payload)
    if error:
        halt(error)

    project = create_project(s, payload, _current_user())
    s.commit()
    return redirect(url_for("projects.project_detail", project_id=project.id))


# ---------- Detail ----------
@bp.get("/projects/<project_id>")
def project_detail(project_id: str):
    project = _get_project_or_halt(project_id)
    return render_template("projects/detail.html", project=project, tree=part_tree(project))


@bp.get("/projects/<project_id>/dashboard")
def project_dashboard(project_id: str):
    project = _get_project_or_halt(project_id)
    status_filter = (request.args.get("status") or "").strip()
    if status_filter and status_filter not in STATUS_MAP:
        halt("Invalid status.")
    return render_template(
        "projects/dashboard.html",
        project=project,
        groups=parts_by_status(project, status_filter or None),
        status_filter=status_filter,
    )


# ---------- Edit ----------
@bp.get("/projects/<project_id>/edit")
@require_capability("administer")
def project_edit_get(project_id: str):
    project = _get_project_or_halt(project_id)
    return render_template("projects/edit.html", project=project)


@bp.post("/projects/<project_id>/edit")
@require_capability("administer")
def project_edit_post(project_id: str):
    s = db_session()
    project = _get_project_or_halt(project_id)
    try:
        update_project(s, project, _project_payload(), _current_user())
    except ValueError as e:
        halt(str(e))
    s.commit()
    return redirect(url_for("projects.project_detail", project_id=project.id))


# ---------- Delete ----------
@bp.get("/projects/<project_id>/delete")
@require_capability("administer")
def project_delete_get(project_id: str):
    project = _get_project_or_halt(project_id)
    return render_template("projects/delete.html", project=project)


@bp.post("/projects/<project_id>/delete")
@require_capability("administer")
def project_delete_post(project_id: str):
    s = db_session()
    project = _get_project_or_halt(project_id)
    delete_project(s, project, _current_user())
    s.commit()
    return redirect(url_for("projects.projects_list"))

