'''
FastAPI application for the scheduling engine.

The engine is created in the lifespan (so tests can repoint DATABASE_URL_TEST
before startup) and disposed on shutdown.
'''
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import availability, bookings, slots
from .api.errors import register_error_handlers
from .common.config import settings
from .common.logger import log
from .database.engine import create_db_engine_and_session_factory, dispose_db_engine

LOCAL_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
]

ROUTERS = (slots.router, bookings.router, availability.router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = settings.database_url.split(":", 1)[0]
    log.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} on {backend} (TEST_MODE={settings.TEST_MODE})")
    create_db_engine_and_session_factory()

    yield

    log.info("Shutting down, disposing database engine...")
    await dispose_db_engine()


def create_app() -> FastAPI:
    """Builds the app: CORS, scheduling error handlers and every router."""
    application = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=LOCAL_ORIGINS + list(settings.BACKEND_CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(application)

    @application.get("/", tags=["Health"])
    async def health_check():
        return {"status": "ok", "message": f"{settings.APP_NAME} is running"}

    for router in ROUTERS:
        application.include_router(router)
    return application


app = create_app()
