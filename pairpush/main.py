import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pairpush.api import health, push
from pairpush.config import Settings, load_settings
from pairpush.logging_config import configure_json_logging
from pairpush.middleware.request_id import RequestIDMiddleware
from pairpush.services.container import ServiceContainer, build_container
from pairpush.utils.error_handling import register_exception_handlers
from pairpush.utils.redaction import redact_dict
from pairpush.version import get_version

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the ASGI application.

    Args:
        settings: Explicit settings; loaded from CONFIG_PATH/environment when omitted
        container: Prebuilt services (tests); built from settings when omitted
        configure_logging: Install the JSON log handler on the root logger

    Raises:
        ConfigurationError: If settings cannot be loaded or the token store is not configured
    """
    if settings is None:
        settings = container.settings if container is not None else load_settings()

    if configure_logging:
        configure_json_logging(log_level=settings.log_level, use_json=settings.log_json)

    if container is None:
        container = build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Starting pairpush",
            extra={
                "components": list(settings.components),
                "token_store_backend": settings.token_store_backend,
                "firebase_configured": settings.has_service_account(),
            },
        )
        logger.debug("Effective settings", extra={"settings": redact_dict(settings.model_dump(mode="json"))})
        yield
        logger.info("pairpush shutting down")

    app = FastAPI(
        title="pairpush",
        description="Device registration and push notification dispatch",
        version=get_version(),
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app)

    app.add_middleware(RequestIDMiddleware)

    # The mobile web client calls both services directly from the browser
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    app.include_router(health.router)
    if "registrar" in settings.components:
        app.include_router(push.registrar_router)
    if "dispatcher" in settings.components:
        app.include_router(push.dispatcher_router)

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
