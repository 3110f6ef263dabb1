from __future__ import annotations

import re
from typing import NoReturn

from flask import abort

_DIGITS = re.compile(r"[0-9]+")
# Largest id a BIGINT primary key (and SQLite INTEGER) can hold.
_MAX_ID = 2**63 - 1


def halt(message: str) -> NoReturn:
    """Terminate the request with a 400 and a plain-text reason."""
    abort(400, description=message)


def is_digits(value: str | None) -> bool:
    return bool(value) and bool(_DIGITS.fullmatch(value))


def parse_id(value: str | None) -> int | None:
    """Record id from a path or form value; None when it cannot name a row."""
    if not is_digits(value):
        return None
    n = int(value)
    return n if n <= _MAX_ID else None


def checkbox(value: str | None) -> bool:
    """HTML checkboxes post "on" when ticked and nothing otherwise."""
    return value == "on"


def safe_redirect_target(target: str | None, default: str = "/") -> str:
    # Only allow local paths to avoid open redirects.
    target = (target or "").strip()
    if target.startswith("/") and not target.startswith("//"):
        return target
    return default
