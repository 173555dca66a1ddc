from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import EnvFile, ServiceSettings, load_service_settings
from .constants import DEFAULT_ENV_FILE, VERSION
from .infrastructure.database.handle import DatabaseHandle, DatabaseHandleProvider
from .logging_config import get_logger, setup_logging
from .logging_utils import log_startup_info
from .middleware import (
    RequestTimeoutMiddleware,
    log_requests_middleware,
    parse_body_middleware,
    unhandled_errors_middleware,
)
from .presentation.error_handlers import register_error_handlers
from .services.registry import ServiceDefinition, get_service, load_router
from .telemetry import setup_telemetry

# Methods allowed cross-origin when the browser preflights
CORS_METHODS = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: ServiceSettings = app.state.settings
    service: ServiceDefinition = app.state.service
    database: DatabaseHandle | None = app.state.database

    setup_logging(settings, service.name)
    logger = get_logger(__name__)

    log_startup_info(
        service.name,
        service.mount_prefix,
        database.redacted_url if database else None,
        settings.debug,
    )

    yield

    if database is not None:
        await database.dispose()
    logger.info("Service shutdown completed", service=service.name)


def create_app(
    service: ServiceDefinition,
    settings: ServiceSettings | None = None,
    *,
    router: APIRouter | None = None,
    database: DatabaseHandle | None = None,
) -> FastAPI:
    """Assemble the HTTP application for a service.

    Args:
        service: Which service to build (display name, mount prefix, router)
        settings: Validated settings; loaded from the environment when omitted
        router: Router to mount; defaults to ``settings.router`` or the
            service's own router
        database: Shared database handle made available to route handlers

    Returns:
        Configured FastAPI application
    """
    settings = settings or load_service_settings()
    if router is None:
        router = load_router(settings.router or service.router)

    app = FastAPI(
        title=service.display_name,
        version=VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service
    app.state.database = database

    setup_telemetry(app, settings)

    # Registered innermost first, so CORS headers reach every response
    app.middleware("http")(parse_body_middleware)
    app.add_middleware(
        RequestTimeoutMiddleware, timeout=settings.request_timeout_seconds
    )
    app.middleware("http")(unhandled_errors_middleware)
    app.middleware("http")(log_requests_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=CORS_METHODS,
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(router, prefix=service.mount_prefix)
    return app


def create_service_app(
    service_name: str, env_file: EnvFile = DEFAULT_ENV_FILE, **overrides: Any
) -> FastAPI:
    """Validate all configuration for a registered service and build its app.

    Raises:
        UnknownServiceError: If the service is not registered
        ConfigurationError: If settings or the connection string are invalid
    """
    service = get_service(service_name)
    settings = load_service_settings(env_file, **overrides)

    database = None
    env_var = service.resolve_database_env_var(settings.database_env_var)
    if env_var is not None:
        provider = DatabaseHandleProvider(env_var, env_file, echo=settings.debug)
        database = provider.get()

    return create_app(service, settings, database=database)
