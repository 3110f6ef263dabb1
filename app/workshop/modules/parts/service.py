"""
Parts service layer.
Handles part numbering, creation, updates, deletion and tree/dashboard views.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.workshop.audit import record_event
from app.workshop.utils import checkbox

from .models import Part

if TYPE_CHECKING:
    from app.workshop.models import User
    from app.workshop.modules.projects.models import Project

logger = logging.getLogger(__name__)

PART_TYPES = ("part", "assembly")

# Workflow states, in shop order. Any state may follow any other.
STATUS_MAP = {
    "designing": "Design in progress",
    "material": "Material needs to be ordered",
    "ordered": "Waiting for materials",
    "drawing": "Needs drawing",
    "ready": "Ready to manufacture",
    "manufacturing": "Manufacturing in progress",
    "outsourced": "Waiting for outsourced manufacturing",
    "welding": "Waiting for welding",
    "scotchbrite": "Waiting for Scotch-Brite",
    "anodize": "Ready for anodize",
    "powder": "Ready for powder coating",
    "coating": "Waiting for coating",
    "assembly": "Waiting for assembly",
    "done": "Done",
}

PRIORITY_MAP = {
    0: "High",
    1: "Normal",
    2: "Low",
}

DEFAULT_STATUS = "designing"
DEFAULT_PRIORITY = 1

# Numbering step per type: parts count up by one, assemblies by hundreds.
_NUMBER_STEP = {"part": 1, "assembly": 100}


def format_part_number(part: Part) -> str:
    """e.g. 254-P-0101 or 254-A-0100."""
    letter = "A" if part.type == "assembly" else "P"
    return f"{part.project.part_number_prefix}-{letter}-{part.part_number:04d}"


def next_part_number(s: Session, project: "Project", part_type: str, parent_part: Part | None = None) -> int:
    """
    Next sequential number for a new part or assembly.

    Parts count up among siblings sharing the same parent (or lack of one).
    Assemblies count up across the whole project so no two ever share a
    number, whatever their parent. With nothing to count from, numbering
    starts at the parent assembly's number.
    """
    if part_type not in _NUMBER_STEP:
        raise ValueError("Invalid part type.")
    q = s.query(func.max(Part.part_number)).filter(Part.project_id == project.id, Part.type == part_type)
    if part_type == "part":
        if parent_part is None:
            q = q.filter(Part.parent_part_id.is_(None))
        else:
            q = q.filter(Part.parent_part_id == parent_part.id)
    current = q.scalar()
    if current is None:
        current = parent_part.part_number if parent_part is not None else 0
    return current + _NUMBER_STEP[part_type]


def generate_number_and_create(
    s: Session,
    project: "Project",
    part_type: str,
    parent_part: Part | None = None,
    *,
    name: str,
    user: "User",
) -> Part:
    """Create a part with the next free number under project/parent."""
    if parent_part is not None and (parent_part.type != "assembly" or parent_part.project_id != project.id):
        raise ValueError("Invalid parent part.")

    now = datetime.utcnow()
    part = Part(
        project_id=project.id,
        parent_part_id=parent_part.id if parent_part is not None else None,
        type=part_type,
        part_number=next_part_number(s, project, part_type, parent_part),
        name=name,
        status=DEFAULT_STATUS,
        priority=DEFAULT_PRIORITY,
        have_material=False,
        drawing_created=False,
        created_at=now,
        updated_at=now,
    )
    part.project = project
    part.parent_part = parent_part
    s.add(part)
    s.flush()

    record_event(
        s,
        actor=user,
        action="part.create",
        entity_type="Part",
        entity_id=str(part.id),
        metadata={"project_id": project.id, "number": format_part_number(part), "name": name, "type": part_type},
    )
    logger.info("Part created (id=%s number=%s)", part.id, format_part_number(part))
    return part


def find_parent_assembly(s: Session, project: "Project", parent_part_id: int) -> Part | None:
    return (
        s.query(Part)
        .filter(Part.id == parent_part_id, Part.project_id == project.id, Part.type == "assembly")
        .one_or_none()
    )


def update_part(s: Session, part: Part, form: dict, user: "User") -> Part:
    """
    Apply an edit form. Text fields change only when present; checkboxes are
    always applied since browsers omit unticked ones.
    Raises ValueError on an unknown status or priority.
    """
    status = form.get("status")
    if status is not None and status not in STATUS_MAP:
        raise ValueError("Invalid status.")

    priority = form.get("priority")
    if priority is not None:
        try:
            priority = int(priority)
        except ValueError:
            raise ValueError("Invalid priority.") from None
        if priority not in PRIORITY_MAP:
            raise ValueError("Invalid priority.")

    changes = {}

    def _set(field: str, value) -> None:
        old = getattr(part, field)
        if value != old:
            changes[field] = {"old": old, "new": value}
            setattr(part, field, value)

    if form.get("name") is not None:
        _set("name", form["name"])
    if status is not None:
        _set("status", status)
    for field in ("notes", "source_material", "cut_length", "quantity"):
        if form.get(field) is not None:
            _set(field, form[field])
    _set("have_material", checkbox(form.get("have_material")))
    _set("drawing_created", checkbox(form.get("drawing_created")))
    if priority is not None:
        _set("priority", priority)

    part.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="part.edit",
        entity_type="Part",
        entity_id=str(part.id),
        metadata={"number": format_part_number(part), "changes": changes},
    )
    return part


def delete_part(s: Session, part: Part, user: "User") -> int:
    """Delete a part; returns its project id. Assemblies must be empty first."""
    if part.child_parts:
        raise ValueError("Can't delete assembly with existing children.")
    project_id = part.project_id
    record_event(
        s,
        actor=user,
        action="part.delete",
        entity_type="Part",
        entity_id=str(part.id),
        metadata={"project_id": project_id, "number": format_part_number(part), "name": part.name},
    )
    if part.parent_part is not None:
        part.parent_part.child_parts.remove(part)
    s.delete(part)
    logger.info("Part deleted (id=%s project_id=%s)", part.id, project_id)
    return project_id


def part_tree(project: "Project") -> list[tuple[Part, int]]:
    """Depth-first (part, depth) listing of a project's parts, assemblies before their children."""
    roots = [p for p in project.parts if p.parent_part_id is None]
    out: list[tuple[Part, int]] = []

    def _walk(part: Part, depth: int) -> None:
        out.append((part, depth))
        for child in sorted(part.child_parts, key=lambda c: c.part_number):
            _walk(child, depth + 1)

    for root in sorted(roots, key=lambda p: p.part_number):
        _walk(root, 0)
    return out


def parts_by_status(project: "Project", status: str | None = None) -> list[tuple[str, list[Part]]]:
    """
    Group a project's parts by workflow status, in STATUS_MAP order.
    Empty groups are dropped; within a group parts sort by priority then number.
    """
    groups: list[tuple[str, list[Part]]] = []
    for key in STATUS_MAP:
        if status and key != status:
            continue
        members = [p for p in project.parts if p.status == key]
        if members:
            members.sort(key=lambda p: (p.priority, p.part_number))
            groups.append((key, members))
    return groups
