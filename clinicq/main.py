# clinicq/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clinicq.core.config import settings
from clinicq.core.errors import InternalError, QueueError
from clinicq.core.logs import configure_logging
from clinicq.db.sql import init_db
from clinicq.modules.events.notifications import NotificationService
from clinicq.modules.events.notifier import BroadcastHub
from clinicq.routers import admin, appointments, auth, health, realtime, staff

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle: logging, schema, realtime hub and the outbound
    notification service are set up once per worker.
    """
    configure_logging()
    await init_db()
    app.state.notifier = BroadcastHub()
    app.state.notifications = NotificationService()
    LOGGER.info("clinic queue API started (env=%s)", settings.APP_ENV)
    yield
    await app.state.notifications.drain()


async def queue_error_handler(request: Request, exc: QueueError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    LOGGER.exception("database error on %s %s", request.method, request.url.path)
    # Don't expose internal details
    error = InternalError("database_error")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="Clinic Queue & Token Management API",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.add_exception_handler(QueueError, queue_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    # Routing
    app.include_router(health.router, prefix=settings.API_PREFIX, tags=["health"])
    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(appointments.router, prefix=settings.API_PREFIX)
    app.include_router(staff.router, prefix=settings.API_PREFIX)
    app.include_router(admin.router, prefix=settings.API_PREFIX)
    app.include_router(realtime.router)

    @app.get("/")
    def root():
        return {"message": "Clinic queue API running successfully"}

    return app


app = create_app()
