"""Deployable services known to svcboot."""

from dataclasses import dataclass
from typing import Final

from fastapi import APIRouter
from uvicorn.importer import ImportFromStringError, import_from_string

from ..domain.exceptions import ConfigurationError, UnknownServiceError


@dataclass(frozen=True)
class ServiceDefinition:
    """Static description of one deployable service."""

    name: str
    display_name: str
    mount_prefix: str
    router: str
    database_env_var: str | None = None

    def resolve_database_env_var(self, override: str | None = None) -> str | None:
        """Variable holding the connection string, or None without a database."""
        if self.database_env_var is None:
            return None
        return override or self.database_env_var


SERVICES: Final[dict[str, ServiceDefinition]] = {
    "auth": ServiceDefinition(
        name="auth",
        display_name="Auth Service",
        mount_prefix="/api/auth",
        router="svcboot.services.auth:router",
        database_env_var="DB_URL",
    ),
    "utils": ServiceDefinition(
        name="utils",
        display_name="Utils Service",
        mount_prefix="/api/utils",
        router="svcboot.services.utils:router",
    ),
}


def get_service(name: str) -> ServiceDefinition:
    """Look up a service by name.

    Raises:
        UnknownServiceError: If no service has that name
    """
    try:
        return SERVICES[name]
    except KeyError:
        known = ", ".join(sorted(SERVICES))
        raise UnknownServiceError(
            f"Unknown service '{name}' (known services: {known})"
        ) from None


def load_router(import_string: str) -> APIRouter:
    """Import the router named by a ``module:attribute`` string.

    Raises:
        ConfigurationError: If it cannot be imported or is not an APIRouter
    """
    try:
        router = import_from_string(import_string)
    except ImportFromStringError as e:
        raise ConfigurationError(f"Cannot load router '{import_string}': {e}") from e

    if not isinstance(router, APIRouter):
        raise ConfigurationError(
            f"'{import_string}' is a {type(router).__name__}, not an APIRouter"
        )
    return router
