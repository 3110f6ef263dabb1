from flask import Blueprint, redirect, url_for

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return redirect(url_for("projects.projects_list"))


@bp.get("/healthz")
def healthz():
    """
    Fast liveness probe. No DB access, no session required.
    """
    return "ok", 200
