from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import admin_router, cron_router, public_router, webhook_router
from .config import settings
from .container import BookingServices, from_settings
from .core.logging_config import setup_logging
from .db import create_all


def create_app(container: BookingServices | None = None) -> FastAPI:
    setup_logging()
    services = container or from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = services.engine
        if engine is not None and bool(settings.DB_AUTO_CREATE_ALL):
            await create_all(engine)
        yield
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Slotbook",
        description="Multi-tenant appointment booking core",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = services

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(public_router)
    app.include_router(cron_router)
    app.include_router(admin_router)
    app.include_router(webhook_router)
    return app
