import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.workshop.models import User

logger = logging.getLogger(__name__)

# Permission level -> display name, lowest to highest.
PERMISSION_MAP = {
    "readonly": "Read-only",
    "editor": "Editor",
    "admin": "Administrator",
}

# Capability -> permission levels that grant it.
CAPABILITIES = {
    "edit": frozenset({"editor", "admin"}),
    "administer": frozenset({"admin"}),
}


def user_has_capability(user: User | None, capability: str) -> bool:
    if not user:
        return False
    return user.permission in CAPABILITIES.get(capability, frozenset())


def can_edit(user: User | None) -> bool:
    return user_has_capability(user, "edit")


def can_administer(user: User | None) -> bool:
    return user_has_capability(user, "administer")


def login_redirect():
    return redirect(url_for("auth.login_get", redirect=request.path))


def require_capability(capability: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user:
                return login_redirect()
            if not user_has_capability(user, capability):
                logger.warning(
                    "Permission denied: user=%s capability=%s path=%s request_id=%s",
                    user.email,
                    capability,
                    request.path,
                    getattr(g, "request_id", None),
                )
                abort(400, description="Insufficient permissions.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
