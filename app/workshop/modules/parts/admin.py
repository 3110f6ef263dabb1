from __future__ import annotations

from flask import Blueprint, g, redirect, render_template, request, url_for

from app.workshop.db import db_session
from app.workshop.models import User
from app.workshop.modules.parts.models import Part
from app.workshop.modules.parts.service import (
    PART_TYPES,
    PRIORITY_MAP,
    STATUS_MAP,
    delete_part,
    find_parent_assembly,
    generate_number_and_create,
    update_part,
)
from app.workshop.modules.projects.models import Project
from app.workshop.rbac import require_capability
from app.workshop.utils import halt, is_digits, parse_id

bp = Blueprint("parts", __name__)

_EDIT_FIELDS = (
    "name",
    "status",
    "notes",
    "source_material",
    "have_material",
    "cut_length",
    "quantity",
    "drawing_created",
    "priority",
)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _lookup(s, model, raw_id: str | None):
    # Out-of-range ids cannot name a row.
    record_id = parse_id(raw_id)
    return s.get(model, record_id) if record_id is not None else None


def _get_part_or_halt(part_id: str) -> Part:
    part = _lookup(db_session(), Part, part_id)
    if part is None:
        halt("Invalid part.")
    return part


# ---------- New ----------
@bp.get("/projects/<project_id>/new_part")
@require_capability("edit")
def part_new_get(project_id: str):
    s = db_session()
    project = _lookup(s, Project, project_id)
    if project is None:
        halt("Invalid project.")
    part_type = request.args.get("type") or "part"
    if part_type not in PART_TYPES:
        halt("Invalid part type.")
    return render_template(
        "parts/new.html",
        project=project,
        parent_part_id=request.args.get("parent_part_id"),
        part_type=part_type,
    )


@bp.post("/parts")
@require_capability("edit")
def part_new_post():
    s = db_session()
    form = request.form

    # Check parameter existence and format.
    project_id = form.get("project_id")
    if not is_digits(project_id):
        halt("Missing project ID.")
    part_type = form.get("type")
    if part_type is None:
        halt("Missing part type.")
    if part_type not in PART_TYPES:
        halt("Invalid part type.")
    name = form.get("name")
    if name is None:
        halt("Missing part name.")
    parent_part_id = form.get("parent_part_id") or None
    if parent_part_id is not None and not is_digits(parent_part_id):
        halt("Invalid parent part ID.")

    project = _lookup(s, Project, project_id)
    if project is None:
        halt("Invalid project.")

    parent_part = None
    if parent_part_id is not None:
        parent_id = parse_id(parent_part_id)
        if parent_id is not None:
            parent_part = find_parent_assembly(s, project, parent_id)
        if parent_part is None:
            halt("Invalid parent part.")

    part = generate_number_and_create(s, project, part_type, parent_part, name=name, user=_current_user())
    s.commit()
    return redirect(url_for("parts.part_detail", part_id=part.id))


# ---------- Detail ----------
@bp.get("/parts/<part_id>")
def part_detail(part_id: str):
    part = _get_part_or_halt(part_id)
    return render_template("parts/detail.html", part=part)


# ---------- Edit ----------
@bp.get("/parts/<part_id>/edit")
@require_capability("edit")
def part_edit_get(part_id: str):
    part = _get_part_or_halt(part_id)
    return render_template("parts/edit.html", part=part, statuses=STATUS_MAP, priorities=PRIORITY_MAP)


@bp.post("/parts/<part_id>/edit")
@require_capability("edit")
def part_edit_post(part_id: str):
    s = db_session()
    part = _get_part_or_halt(part_id)
    form = {field: request.form.get(field) for field in _EDIT_FIELDS}
    try:
        update_part(s, part, form, _current_user())
    except ValueError as e:
        halt(str(e))
    s.commit()
    return redirect(url_for("parts.part_detail", part_id=part.id))


# ---------- Delete ----------
@bp.get("/parts/<part_id>/delete")
@require_capability("edit")
def part_delete_get(part_id: str):
    part = _get_part_or_halt(part_id)
    return render_template("parts/delete.html", part=part)


@bp.post("/parts/<part_id>/delete")
@require_capability("edit")
def part_delete_post(part_id: str):
    s = db_session()
    part = _get_part_or_halt(part_id)
    try:
        project_id = delete_part(s, part, _current_user())
    except ValueError as e:
        halt(str(e))
    s.commit()
    return redirect(url_for("projects.project_detail", project_id=project_id))
