"""Tests for the parts module."""
from urllib.parse import urlparse

import pytest
from werkzeug.security import generate_password_hash

from app.workshop import auth
from app.workshop import create_app
from app.workshop.db import session_scope
from app.workshop.models import Base, User
from app.workshop.modules.parts.models import Part
from app.workshop.modules.projects.models import Project

CSRF = "test-csrf-token"


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    auth._login_attempts.clear()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        for email, permission in (("editor@example.com", "editor"), ("reader@example.com", "readonly")):
            s.add(
                User(
                    email=email,
                    first_name=permission.title(),
                    last_name="Tester",
                    password_hash=generate_password_hash("pw"),
                    permission=permission,
                )
            )
        s.add_all([Project(name="Robot", part_number_prefix="254"), Project(name="Spare", part_number_prefix="1")])
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def project_id(app):
    with session_scope(app) as s:
        return s.query(Project).filter(Project.name == "Robot").one().id


def _login(client, email="editor@example.com"):
    client.post("/login", data={"email": email, "password": "pw"})
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _post(client, url, data=None):
    return client.post(url, data={**(data or {}), "csrf_token": CSRF})


def _new_part(client, project_id, name, part_type="part", parent_part_id=None):
    data = {"project_id": str(project_id), "type": part_type, "name": name}
    if parent_part_id is not None:
        data["parent_part_id"] = str(parent_part_id)
    r = _post(client, "/parts", data)
    assert r.status_code == 302, r.data
    return int(urlparse(r.headers["Location"]).path.rsplit("/", 1)[1])


def test_new_part_form(client, project_id):
    _login(client)
    r = client.get(f"/projects/{project_id}/new_part?type=assembly")
    assert r.status_code == 200
    assert b'name="type" value="assembly"' in r.data


def test_new_part_form_rejects_bad_type(client, project_id):
    _login(client)
    r = client.get(f"/projects/{project_id}/new_part?type=widget")
    assert r.status_code == 400
    assert r.data == b"Invalid part type."


def test_create_part_defaults_and_number(app, client, project_id):
    _login(client)
    part_id = _new_part(client, project_id, "Bracket")

    r = client.get(f"/parts/{part_id}")
    assert r.status_code == 200
    assert b"254-P-0001" in r.data
    assert b"Design in progress" in r.data

    with session_scope(app) as s:
        part = s.get(Part, part_id)
        assert part.status == "designing"
        assert part.priority == 1
        assert part.parent_part_id is None


@pytest.mark.parametrize(
    "data, message",
    [
        ({"type": "part", "name": "x"}, b"Missing project ID."),
        ({"project_id": "abc", "type": "part", "name": "x"}, b"Missing project ID."),
        ({"project_id": "{pid}", "name": "x"}, b"Missing part type."),
        ({"project_id": "{pid}", "type": "widget", "name": "x"}, b"Invalid part type."),
        ({"project_id": "{pid}", "type": "part"}, b"Missing part name."),
        ({"project_id": "{pid}", "type": "part", "name": "x", "parent_part_id": "a1"}, b"Invalid parent part ID."),
        ({"project_id": "9999", "type": "part", "name": "x"}, b"Invalid project."),
        ({"project_id": "{pid}", "type": "part", "name": "x", "parent_part_id": "9999"}, b"Invalid parent part."),
        ({"project_id": "99999999999999999999999", "type": "part", "name": "x"}, b"Invalid project."),
        ({"project_id": "{pid}", "type": "part", "name": "x", "parent_part_id": "99999999999999999999999"}, b"Invalid parent part."),
    ],
)
def test_create_part_validation(client, project_id, data, message):
    _login(client)
    data = {k: v.format(pid=project_id) for k, v in data.items()}
    r = _post(client, "/parts", data)
    assert r.status_code == 400
    assert r.data == message


def test_create_part_under_plain_part_rejected(client, project_id):
    _login(client)
    plain_id = _new_part(client, project_id, "Bracket")
    r = _post(client, "/parts", {"project_id": str(project_id), "type": "part", "name": "x", "parent_part_id": str(plain_id)})
    assert r.status_code == 400
    assert r.data == b"Invalid parent part."


def test_create_part_under_assembly_of_other_project_rejected(app, client, project_id):
    _login(client)
    with session_scope(app) as s:
        other_id = s.query(Project).filter(Project.name == "Spare").one().id
    assembly_id = _new_part(client, other_id, "Gearbox", "assembly")
    r = _post(client, "/parts", {"project_id": str(project_id), "type": "part", "name": "x", "parent_part_id": str(assembly_id)})
    assert r.status_code == 400
    assert r.data == b"Invalid parent part."


def test_readonly_user_cannot_mutate_parts(client, project_id):
    _login(client, "reader@example.com")
    r = _post(client, "/parts", {"project_id": str(project_id), "type": "part", "name": "x"})
    assert r.status_code == 400
    assert r.data == b"Insufficient permissions."
    assert client.get(f"/projects/{project_id}/new_part").status_code == 400


def test_readonly_user_can_view(client, project_id):
    _login(client, "reader@example.com")
    assert client.get(f"/projects/{project_id}").status_code == 200
    assert client.get(f"/projects/{project_id}/dashboard").status_code == 200


def test_edit_part_updates_fields(app, client, project_id):
    _login(client)
    part_id = _new_part(client, project_id, "Bracket")

    assert client.get(f"/parts/{part_id}/edit").status_code == 200
    r = _post(
        client,
        f"/parts/{part_id}/edit",
        {
            "name": "Bracket, left",
            "status": "manufacturing",
            "notes": "Deburr edges",
            "source_material": "1/8in aluminum plate",
            "have_material": "on",
            "cut_length": "4in",
            "quantity": "2",
            "priority": "0",
        },
    )
    assert r.status_code == 302
    assert urlparse(r.headers["Location"]).path == f"/parts/{part_id}"

    with session_scope(app) as s:
        part = s.get(Part, part_id)
        assert part.name == "Bracket, left"
        assert part.status == "manufacturing"
        assert part.notes == "Deburr edges"
        assert part.have_material is True
        assert part.drawing_created is False
        assert part.quantity == "2"
        assert part.priority == 0


def test_edit_part_unticked_checkbox_clears_flag(app, client, project_id):
    _login(client)
    part_id = _new_part(client, project_id, "Bracket")
    _post(client, f"/parts/{part_id}/edit", {"drawing_created": "on"})
    _post(client, f"/parts/{part_id}/edit", {"name": "Bracket"})
    with session_scope(app) as s:
        assert s.get(Part, part_id).drawing_created is False


@pytest.mark.parametrize("data, message", [({"status": "lost"}, b"Invalid status."), ({"priority": "7"}, b"Invalid priority.")])
def test_edit_part_rejects_bad_enums(client, project_id, data, message):
    _login(client)
    part_id = _new_part(client, project_id, "Bracket")
    r = _post(client, f"/parts/{part_id}/edit", data)
    assert r.status_code == 400
    assert r.data == message


def test_unknown_part(client):
    _login(client)
    for path in ("/parts/999", "/parts/999/edit", "/parts/nope/delete"):
        r = client.get(path)
        assert r.status_code == 400
        assert r.data == b"Invalid part."
    r = _post(client, "/parts/999/delete")
    assert r.status_code == 400


def test_part_id_beyond_integer_range_is_unknown(client, project_id):
    _login(client)
    huge = "99999999999999999999999"
    for path in (f"/parts/{huge}", f"/parts/{huge}/edit"):
        r = client.get(path)
        assert r.status_code == 400
        assert r.data == b"Invalid part."
    r = _post(client, f"/parts/{huge}/delete")
    assert r.status_code == 400
    assert r.data == b"Invalid part."
    r = client.get(f"/projects/{huge}/new_part")
    assert r.status_code == 400
    assert r.data == b"Invalid project."


def test_delete_assembly_with_children_rejected(app, client, project_id):
    _login(client)
    assembly_id = _new_part(client, project_id, "Drivetrain", "assembly")
    _new_part(client, project_id, "Axle", parent_part_id=assembly_id)

    r = _post(client, f"/parts/{assembly_id}/delete")
    assert r.status_code == 400
    assert r.data == b"Can't delete assembly with existing children."
    with session_scope(app) as s:
        assert s.get(Part, assembly_id) is not None


def test_delete_empty_assembly_redirects_to_project(app, client, project_id):
    _login(client)
    assembly_id = _new_part(client, project_id, "Drivetrain", "assembly")
    child_id = _new_part(client, project_id, "Axle", parent_part_id=assembly_id)

    assert client.get(f"/parts/{child_id}/delete").status_code == 200
    r = _post(client, f"/parts/{child_id}/delete")
    assert r.status_code == 302
    assert urlparse(r.headers["Location"]).path == f"/projects/{project_id}"

    r = _post(client, f"/parts/{assembly_id}/delete")
    assert r.status_code == 302
    assert urlparse(r.headers["Location"]).path == f"/projects/{project_id}"
    with session_scope(app) as s:
        assert s.query(Part).count() == 0


def test_project_page_shows_tree(client, project_id):
    _login(client)
    assembly_id = _new_part(client, project_id, "Drivetrain", "assembly")
    _new_part(client, project_id, "Axle", parent_part_id=assembly_id)

    r = client.get(f"/projects/{project_id}")
    assert r.status_code == 200
    body = r.data.decode()
    assert "254-A-0100" in body
    assert "254-P-0101" in body
    assert body.index("254-A-0100") < body.index("254-P-0101")
