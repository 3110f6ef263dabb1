"""Part numbering and tree helpers, exercised directly against the service layer."""
import pytest

from app.workshop import create_app
from app.workshop.db import session_scope
from app.workshop.models import AuditEvent, Base, User
from app.workshop.modules.parts.service import (
    format_part_number,
    generate_number_and_create,
    next_part_number,
    part_tree,
    parts_by_status,
)
from app.workshop.modules.projects.models import Project


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def s(app):
    with session_scope(app) as session:
        yield session


@pytest.fixture()
def user(s):
    u = User(email="editor@example.com", first_name="Ed", last_name="Itor", password_hash="x", permission="editor")
    s.add(u)
    s.flush()
    return u


@pytest.fixture()
def project(s):
    p = Project(name="Robot", part_number_prefix="254")
    s.add(p)
    s.flush()
    return p


def _create(s, project, part_type, parent=None, *, user, name="x"):
    return generate_number_and_create(s, project, part_type, parent, name=name, user=user)


def test_root_parts_count_up_by_one(s, project, user):
    numbers = [_create(s, project, "part", user=user).part_number for _ in range(3)]
    assert numbers == [1, 2, 3]


def test_root_assemblies_count_up_by_hundred(s, project, user):
    numbers = [_create(s, project, "assembly", user=user).part_number for _ in range(3)]
    assert numbers == [100, 200, 300]


def test_parts_and_assemblies_are_numbered_independently(s, project, user):
    _create(s, project, "part", user=user)
    assembly = _create(s, project, "assembly", user=user)
    part = _create(s, project, "part", user=user)
    assert assembly.part_number == 100
    assert part.part_number == 2


def test_children_are_numbered_from_parent(s, project, user):
    drive = _create(s, project, "assembly", user=user)
    _create(s, project, "assembly", user=user)
    axle = _create(s, project, "part", drive, user=user)
    hub = _create(s, project, "part", drive, user=user)
    gearbox = _create(s, project, "assembly", drive, user=user)
    assert (axle.part_number, hub.part_number) == (101, 102)
    assert gearbox.part_number == 300


def test_first_subassembly_starts_from_parent(s, project, user):
    drive = _create(s, project, "assembly", user=user)
    gearbox = _create(s, project, "assembly", drive, user=user)
    assert gearbox.part_number == 200


def test_assembly_numbers_unique_across_nesting(s, project, user):
    drive = _create(s, project, "assembly", user=user)
    sub = _create(s, project, "assembly", drive, user=user)
    arm = _create(s, project, "assembly", user=user)
    numbers = [format_part_number(a) for a in (drive, sub, arm)]
    assert numbers == ["254-A-0100", "254-A-0200", "254-A-0300"]

    # Parts under each assembly stay in their own hundred.
    in_sub = _create(s, project, "part", sub, user=user)
    in_arm = _create(s, project, "part", arm, user=user)
    assert (in_sub.part_number, in_arm.part_number) == (201, 301)


def test_numbering_is_scoped_per_project(s, project, user):
    other = Project(name="Spare", part_number_prefix="9")
    s.add(other)
    s.flush()
    _create(s, project, "part", user=user)
    _create(s, project, "part", user=user)
    assert next_part_number(s, other, "part") == 1


def test_next_part_number_rejects_unknown_type(s, project):
    with pytest.raises(ValueError):
        next_part_number(s, project, "widget")


def test_create_rejects_non_assembly_parent(s, project, user):
    bracket = _create(s, project, "part", user=user)
    with pytest.raises(ValueError, match="Invalid parent part."):
        _create(s, project, "part", bracket, user=user)


def test_format_part_number(s, project, user):
    assert format_part_number(_create(s, project, "part", user=user)) == "254-P-0001"
    assert format_part_number(_create(s, project, "assembly", user=user)) == "254-A-0100"


def test_create_records_audit_event(s, project, user):
    part = _create(s, project, "part", user=user, name="Bracket")
    ev = s.query(AuditEvent).filter(AuditEvent.action == "part.create").one()
    assert ev.entity_id == str(part.id)
    assert ev.actor_user_email == "editor@example.com"
    assert "254-P-0001" in ev.metadata_json


def test_part_tree_orders_children_under_parents(s, project, user):
    drive = _create(s, project, "assembly", user=user, name="Drive")
    loose = _create(s, project, "part", user=user, name="Loose")
    axle = _create(s, project, "part", drive, user=user, name="Axle")
    s.refresh(project)
    s.refresh(drive)
    tree = [(p.name, depth) for p, depth in part_tree(project)]
    assert tree == [("Loose", 0), ("Drive", 0), ("Axle", 1)]
    assert loose.part_number < drive.part_number < axle.part_number


def test_parts_by_status_orders_by_priority(s, project, user):
    low = _create(s, project, "part", user=user, name="Low")
    high = _create(s, project, "part", user=user, name="High")
    done = _create(s, project, "part", user=user, name="Done")
    low.priority = 2
    high.priority = 0
    done.status = "done"
    s.flush()
    s.refresh(project)
    groups = parts_by_status(project)
    assert [status for status, _ in groups] == ["designing", "done"]
    assert [p.name for p in groups[0][1]] == ["High", "Low"]
    assert [status for status, _ in parts_by_status(project, "done")] == ["done"]
