import secrets

from flask import Request, session

CSRF_FAILURE_MESSAGE = "CSRF token missing or invalid."

# Endpoints reachable before a session (and so a token) exists.
CSRF_EXEMPT_ENDPOINTS = frozenset({"auth.login_post"})


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from the form or the X-CSRF-Token header."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    return bool(token and secrets.compare_digest(token, session.get("csrf_token") or ""))


def csrf_required(req: Request) -> bool:
    """Whether this request mutates state and has to carry the session token."""
    if req.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return False
    return req.endpoint not in CSRF_EXEMPT_ENDPOINTS


def csrf_failure_response():
    # Same plain-text 400 shape as every other validation failure.
    return CSRF_FAILURE_MESSAGE, 400, {"Content-Type": "text/plain; charset=utf-8"}
