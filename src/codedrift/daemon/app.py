"""Starlette application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from starlette.applications import Starlette

from codedrift.daemon.middleware import RequestIdMiddleware
from codedrift.daemon.routes import create_routes

if TYPE_CHECKING:
    from codedrift.daemon.context import AppContext
    from codedrift.daemon.scheduler import SyncScheduler


def create_app(ctx: AppContext, scheduler: SyncScheduler | None = None) -> Starlette:
    """Create the Starlette application.

    When a scheduler is given it runs for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        if scheduler is not None:
            await scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()

    app = Starlette(routes=create_routes(ctx, scheduler), lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    return app
