"""
middleware/identity.py — Caller identity decorator.

The ledger trusts an opaque, pre-authenticated user id supplied by the
upstream gateway in a request header (USER_ID_HEADER, default `X-User-Id`).
It performs no credential checks of its own.

Strict responsibility boundary:
  - This middleware extracts the user id and attaches it to flask.g ONLY.
  - It does NOT perform authorization (group membership, admin role).
    That belongs in the service layer. Middleware = identity (401).
    Service = authorization (403).
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from backend.groupledger.errors import AppError, ErrorCode

MAX_USER_ID_LENGTH = 64


def require_user(f: Callable) -> Callable:
    """
    Route decorator that resolves the caller's user id into flask.g.user_id.

    Usage:
        @groups_bp.route("/", methods=["GET"])
        @require_user
        def list_groups():
            user_id = g.user_id  # always a non-empty str when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = _resolve_user_id()
        return f(*args, **kwargs)

    return decorated


def _resolve_user_id() -> str:
    """
    Reads and sanity-checks the identity header.

    Separated from the decorator wrapper so it can be called directly in
    tests inside a request context.
    """
    header = current_app.config.get("USER_ID_HEADER", "X-User-Id")
    user_id = request.headers.get(header, "").strip()

    if not user_id:
        raise AppError(
            ErrorCode.USER_ID_MISSING,
            f"Caller identity missing. The gateway must set the {header} header.",
            401,
        )

    if len(user_id) > MAX_USER_ID_LENGTH:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{header} must be at most {MAX_USER_ID_LENGTH} characters.",
            401,
        )

    return user_id
