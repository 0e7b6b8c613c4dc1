from __future__ import annotations

import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import Base, engine
from .observability import RequestTimingLoggingMiddleware, add_exception_handlers, configure_logging
from .routers import health
from .routers import checkin as checkin_router
from .routers import events as events_router
from .routers import registrations as registrations_router

# Ensure schema is present when the module is imported (helps tests using TestClient without lifespan)
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    Base.metadata.create_all(bind=engine)
    logging.getLogger("checkin").info("starting environment=%s", get_settings().environment)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(title="Event Check-in API", version="0.1.0", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestTimingLoggingMiddleware)

    add_exception_handlers(application)

    application.include_router(health.router)
    application.include_router(checkin_router.router)
    application.include_router(registrations_router.router)
    application.include_router(events_router.router)

    return application


app = create_app()
