"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
  - TestingConfig defaults to in-memory SQLite, so no database server is
    needed. Set TEST_DATABASE_URL to run the same suite against PostgreSQL.
  - Every test gets freshly created tables (create_all before, drop_all after).
  - Identity is the X-User-Id header; there is no login step.

Helper functions (not fixtures) are provided for common operations:
  - headers(user_id)            → {"X-User-Id": user_id}
  - make_group(client, ...)     → group dict
  - add_member(client, ...)     → HTTP response
  - make_expense(client, ...)   → HTTP response
  - settle(client, ...)         → HTTP response

These are plain functions so they can be called with arbitrary arguments in
any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest

from backend.groupledger import create_app
from backend.groupledger.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# App and database fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once per session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def tables(app):
    """
    Creates every table before a test and drops them afterwards.

    autouse=True means this runs around EVERY test in the integration suite.
    """
    with app.app_context():
        _db.create_all()

    yield

    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    """An active app context for tests that call the service layer directly."""
    with app.app_context():
        yield
        _db.session.rollback()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def headers(user_id: str) -> dict:
    return {"X-User-Id": user_id}


def make_group(
    client,
    owner: str = "alice",
    name: str = "Trip",
    currency: str = "USD",
    members: tuple[str, ...] = (),
    settings: dict | None = None,
) -> dict:
    """
    Creates a group owned by `owner`, then adds each of `members`.
    Returns the group data dict from the create response.
    """
    payload = {"name": name, "currency": currency}
    if settings is not None:
        payload["settings"] = settings
    resp = client.post("/api/v1/groups", json=payload, headers=headers(owner))
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    group = resp.get_json()["data"]

    for member in members:
        add_resp = add_member(client, owner, group["id"], member)
        assert add_resp.status_code == 201, f"add_member failed: {add_resp.get_json()}"
    return group


def add_member(client, caller: str, group_id: int, user_id: str):
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user_id},
        headers=headers(caller),
    )


def make_expense(
    client,
    caller: str,
    group_id: int,
    amount: str,
    description: str = "Dinner",
    splits: list[dict] | None = None,
    **extra,
):
    """Records an expense. Omitting splits asks for an equal split."""
    payload = {"amount": amount, "description": description, **extra}
    if splits is not None:
        payload["splits"] = splits
    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=headers(caller),
    )


def settle(client, caller: str, group_id: int):
    return client.post(f"/api/v1/groups/{group_id}/settle", headers=headers(caller))


def balances(client, caller: str, group_id: int) -> dict:
    """Returns {user_id: balance_str} from GET /groups/:id/balances."""
    resp = client.get(f"/api/v1/groups/{group_id}/balances", headers=headers(caller))
    assert resp.status_code == 200, f"balances failed: {resp.get_json()}"
    return {row["user_id"]: row["balance"] for row in resp.get_json()["data"]["balances"]}
