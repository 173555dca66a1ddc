import socket
from typing import Any

import uvicorn
from fastapi import FastAPI

from .config import EnvFile, ServiceSettings
from .constants import DEFAULT_ENV_FILE
from .logging_config import get_logger
from .main import create_service_app


class ServiceServer(uvicorn.Server):
    """uvicorn server that confirms a successful bind in the service log."""

    def __init__(self, config: uvicorn.Config, display_name: str):
        super().__init__(config)
        self.display_name = display_name

    async def startup(self, sockets: list[socket.socket] | None = None) -> None:
        logger = get_logger(__name__)
        try:
            await super().startup(sockets=sockets)
        except SystemExit:
            # uvicorn exits with status 1 when the port cannot be bound
            logger.error(
                "Failed to bind listener",
                service=self.display_name,
                host=self.config.host,
                port=self.config.port,
            )
            raise

        if self.started:
            logger.info(
                f"{self.display_name} is running on port {self.config.port}",
                host=self.config.host,
                port=self.config.port,
            )


def build_server(
    app: FastAPI, settings: ServiceSettings, display_name: str
) -> ServiceServer:
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,  # logging is configured by the app lifespan
        access_log=False,
        lifespan="on",
    )
    return ServiceServer(config, display_name)


def serve(
    service_name: str, env_file: EnvFile = DEFAULT_ENV_FILE, **overrides: Any
) -> None:
    """Validate configuration, then bind and run the service until stopped.

    Configuration errors are raised before any listener exists.
    """
    app = create_service_app(service_name, env_file, **overrides)
    server = build_server(app, app.state.settings, app.state.service.display_name)
    server.run()
