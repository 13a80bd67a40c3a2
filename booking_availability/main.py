import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_availability.api.router import api_router
from booking_availability.core.config import get_settings


logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    _log_startup()
    yield
    logger.info("Shutting down %s", get_settings().app_name)


def create_application() -> FastAPI:
    _configure_logging()
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


def _log_startup() -> None:
    settings = get_settings()
    logger.info(
        "Starting %s env=%s data_store=%s availability_timezone=%s",
        settings.app_name,
        settings.app_env,
        settings.data_store,
        settings.availability_timezone,
    )


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "booking_availability.main:app",
        host=settings.server_host,
        port=settings.server_port,
    )


app = create_application()
