"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so it can be imported
anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in groupledger/__init__.py.
    3. Import `db` from here wherever a session is needed.

    from backend.groupledger.extensions import db

Do not pass the app object directly to SQLAlchemy() at import time: that
would prevent running tests with a separate test app instance.

Services never import `db`. They receive a LedgerStore wrapping a session,
so the unit tests can run without a Flask app.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
