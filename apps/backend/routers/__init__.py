"""Router aggregation helpers.

Core category, expense, calendar, dashboard and settings routes live in
`app.routers`; feature routers are mounted next to it.
"""

from fastapi import FastAPI

from app import routers as core_router_module

from . import reports


def register_routers(app: FastAPI) -> None:
    """Attach all API routes to the FastAPI application."""

    app.include_router(core_router_module.router, prefix="/api")
    app.include_router(reports.router, prefix="/api")
