from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.workshop.audit import record_event
from app.workshop.utils import is_digits

from .models import Project

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.workshop.models import User

logger = logging.getLogger(__name__)


def validate_project_payload(payload: dict) -> str | None:
    """Validate project creation payload. Returns the first error, if any."""
    if payload.get("name") is None:
        return "Missing project name."
    if not is_digits(payload.get("part_number_prefix")):
        return "Missing or invalid part number prefix."
    return None


def create_project(s: "Session", payload: dict, user: "User") -> Project:
    """Create a new project."""
    now = datetime.utcnow()
    project = Project(
        name=payload["name"].strip(),
        part_number_prefix=payload["part_number_prefix"],
        created_at=now,
        updated_at=now,
    )
    s.add(project)
    s.flush()

    record_event(
        s,
        actor=user,
        action="project.create",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"name": project.name, "part_number_prefix": project.part_number_prefix},
    )
    logger.info("Project created (id=%s name=%s)", project.id, project.name)
    return project


def update_project(s: "Session", project: Project, payload: dict, user: "User") -> Project:
    """Apply the fields present in payload. Raises ValueError on a bad prefix."""
    changes = {}

    prefix = payload.get("part_number_prefix")
    if prefix is not None:
        if not is_digits(prefix):
            raise ValueError("Invalid part number prefix.")
        if prefix != project.part_number_prefix:
            changes["part_number_prefix"] = {"old": project.part_number_prefix, "new": prefix}
            project.part_number_prefix = prefix

    name = payload.get("name")
    if name is not None and name.strip() != project.name:
        changes["name"] = {"old": project.name, "new": name.strip()}
        project.name = name.strip()

    project.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="project.edit",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"changes": changes},
    )
    return project


def delete_project(s: "Session", project: Project, user: "User") -> None:
    """Delete a project together with all of its parts."""
    record_event(
        s,
        actor=user,
        action="project.delete",
        entity_type="Project",
        entity_id=str(project.id),
        metadata={"name": project.name, "part_count": len(project.parts)},
    )
    s.delete(project)
    logger.info("Project deleted (id=%s name=%s)", project.id, project.name)
