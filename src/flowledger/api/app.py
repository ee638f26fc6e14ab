"""
FastAPI application factory.

Exposes the database health endpoints and installs the RFC 7807 error
handlers. Applications mount their own routers on the returned app and
call the repositories of the same :class:`~flowledger.database.Database`.
"""

from __future__ import annotations

from fastapi import FastAPI

from flowledger import __version__
from flowledger.api.errors import install_exception_handlers
from flowledger.core.health import create_health_router
from flowledger.database import Database


def create_app(db: Database, *, debug: bool | None = None) -> FastAPI:
    """Build a FastAPI app backed by *db*.

    Parameters
    ----------
    db : Database
        Owned by the caller; the app never closes it.
    debug : bool | None
        Include backend error text in problem responses. Defaults to
        ``db.settings.debug``.
    """
    app = FastAPI(title="flowledger", version=__version__)
    app.state.db = db
    app.state.debug = db.settings.debug if debug is None else debug

    install_exception_handlers(app)
    app.include_router(create_health_router(db.monitor))
    return app
