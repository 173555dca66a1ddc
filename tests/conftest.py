import logging
import os
from pathlib import Path
from typing import Any

import anyio
import pytest
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.testclient import TestClient

from svcboot.config import load_service_settings
from svcboot.infrastructure.database.handle import DatabaseHandle
from svcboot.main import create_app
from svcboot.request_utils import get_body
from svcboot.services.registry import SERVICES

# Everything the services read from the environment
SERVICE_ENV_KEYS = (
    "HOST",
    "PORT",
    "DEBUG",
    "BODY_LIMIT",
    "CORS_ORIGINS",
    "REQUEST_TIMEOUT_SECONDS",
    "DATABASE_ENV_VAR",
    "ROUTER",
    "LOG_LEVEL",
    "LOG_TO_FILE",
    "ENABLE_TELEMETRY",
    "METRICS_PORT",
    "DB_URL",
    "NEON_DB_URL",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Run every test with a clean environment and no stray .env file."""
    for key in SERVICE_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(key.lower(), raising=False)
    monkeypatch.chdir(tmp_path)

    root_logger = logging.getLogger()
    handlers, level = list(root_logger.handlers), root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
    structlog.reset_defaults()


def build_echo_router() -> APIRouter:
    """Stand-in for an externally defined router."""
    router = APIRouter()

    @router.api_route("/echo/{rest:path}", methods=["GET", "POST", "PUT"])
    async def echo(request: Request, rest: str, body: Any = Depends(get_body)):
        raw = await request.body()
        return {
            "path": request.url.path,
            "rest": rest,
            "query": dict(request.query_params),
            "body": body,
            "raw_length": len(raw),
        }

    @router.get("/items/{item_id}")
    async def item(item_id: int):
        return {"item_id": item_id}

    @router.get("/slow")
    async def slow():
        await anyio.sleep(1)
        return {"done": True}

    return router


@pytest.fixture
def make_client():
    """Build a TestClient for a service app with explicit settings."""

    def _make(
        service: str = "utils",
        api_router: APIRouter | None = None,
        database: DatabaseHandle | None = None,
        use_default_router: bool = False,
        **overrides: Any,
    ) -> TestClient:
        settings = load_service_settings(env_file=None, **overrides)
        if api_router is None and not use_default_router:
            api_router = build_echo_router()
        app = create_app(
            SERVICES[service], settings, router=api_router, database=database
        )
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


def _get_test_database_url(tmp_path: Path) -> str:
    """Get database URL for testing based on environment."""
    return os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'svcboot.db'}"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return _get_test_database_url(tmp_path)


@pytest.fixture
async def database(database_url: str):
    handle = DatabaseHandle(database_url)
    yield handle
    await handle.dispose()
