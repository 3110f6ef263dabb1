import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session
from werkzeug.exceptions import BadRequest

from app.workshop.config import load_config
from app.workshop.db import init_db, teardown_db_session
from app.workshop.routes import bp as routes_bp
from app.workshop.auth import bp as auth_bp, load_current_user, require_login
from app.workshop.admin import bp as admin_bp
from app.workshop.modules.projects.admin import bp as projects_bp
from app.workshop.modules.parts.admin import bp as parts_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from app.workshop.security import csrf_failure_response, csrf_required, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.workshop.rbac import user_has_capability

        def can(capability: str) -> bool:
            return user_has_capability(getattr(g, "current_user", None), capability)

        return {"can": can, "current_user": getattr(g, "current_user", None)}

    from app.workshop.modules.parts.service import PRIORITY_MAP, STATUS_MAP, format_part_number

    @app.template_filter("part_number")
    def _part_number_filter(part) -> str:
        return format_part_number(part)

    @app.template_filter("status_label")
    def _status_label_filter(value: str) -> str:
        return STATUS_MAP.get(value, value)

    @app.template_filter("priority_label")
    def _priority_label_filter(value: int) -> str:
        return PRIORITY_MAP.get(value, str(value))

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(parts_bp)

    # Order matters: resolve the session user, bounce anonymous requests to
    # the login page, then check CSRF on whatever is left.
    app.before_request(load_current_user)
    app.before_request(require_login)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith("/static/") or request.path == "/healthz":
            return None
        ensure_csrf_token()
        session.permanent = True
        if csrf_required(request) and not validate_csrf(request):
            app.logger.warning("CSRF check failed (path=%s request_id=%s)", request.path, getattr(g, "request_id", None))
            return csrf_failure_response()
        return None

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(BadRequest)
    def _err_400(e: BadRequest):
        # Validation and permission failures: terminal, plain-text reason.
        return e.description or "Bad request.", 400, {"Content-Type": "text/plain; charset=utf-8"}

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
