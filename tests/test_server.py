import pytest
import uvicorn
from structlog.testing import capture_logs

from svcboot.config import load_service_settings
from svcboot.domain.exceptions import ConfigurationError, UnknownServiceError
from svcboot.main import create_app, create_service_app
from svcboot.server import ServiceServer, build_server, serve
from svcboot.services.registry import SERVICES


@pytest.fixture
def utils_app():
    settings = load_service_settings(env_file=None, port=6123, host="127.0.0.1")
    return create_app(SERVICES["utils"], settings)


@pytest.fixture
def recorded_runs(monkeypatch: pytest.MonkeyPatch) -> list[ServiceServer]:
    """Replace the blocking server loop with a recorder."""
    runs: list[ServiceServer] = []

    def fake_run(self, sockets=None):
        runs.append(self)

    monkeypatch.setattr(ServiceServer, "run", fake_run)
    return runs


def test_build_server_binds_configured_port(utils_app):
    server = build_server(utils_app, utils_app.state.settings, "Utils Service")

    assert server.config.port == 6123
    assert server.config.host == "127.0.0.1"
    assert server.config.app is utils_app


async def test_startup_confirmation_is_logged(
    monkeypatch: pytest.MonkeyPatch, utils_app
):
    async def fake_startup(self, sockets=None):
        self.started = True

    monkeypatch.setattr(uvicorn.Server, "startup", fake_startup)
    server = build_server(utils_app, utils_app.state.settings, "Utils Service")

    with capture_logs() as logs:
        await server.startup()

    events = [entry["event"] for entry in logs]
    assert "Utils Service is running on port 6123" in events


async def test_bind_failure_is_fatal(monkeypatch: pytest.MonkeyPatch, utils_app):
    async def failing_startup(self, sockets=None):
        raise SystemExit(1)

    monkeypatch.setattr(uvicorn.Server, "startup", failing_startup)
    server = build_server(utils_app, utils_app.state.settings, "Utils Service")

    with capture_logs() as logs, pytest.raises(SystemExit) as exc_info:
        await server.startup()

    assert exc_info.value.code == 1
    assert any(entry["event"] == "Failed to bind listener" for entry in logs)
    assert not any("is running" in entry["event"] for entry in logs)


def test_serve_uses_default_port(recorded_runs):
    serve("utils", env_file=None)

    assert len(recorded_runs) == 1
    assert recorded_runs[0].config.port == 5001


def test_serve_uses_port_from_environment(
    monkeypatch: pytest.MonkeyPatch, recorded_runs
):
    monkeypatch.setenv("PORT", "5123")

    serve("utils", env_file=None)

    assert recorded_runs[0].config.port == 5123


def test_serve_validates_before_binding(recorded_runs):
    with pytest.raises(ConfigurationError, match="DB_URL"):
        serve("auth", env_file=None)

    assert recorded_runs == []


def test_serve_rejects_unknown_service(recorded_runs):
    with pytest.raises(UnknownServiceError):
        serve("billing", env_file=None)

    assert recorded_runs == []


def test_service_app_receives_database_handle(monkeypatch: pytest.MonkeyPatch):
    url = "postgresql://app:pw@db.internal/app"
    monkeypatch.setenv("DB_URL", url)

    app = create_service_app("auth", env_file=None)

    assert app.state.database.url == url


def test_database_env_var_can_be_overridden(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_ENV_VAR", "NEON_DB_URL")
    monkeypatch.setenv("NEON_DB_URL", "postgresql://neon@ep.neon.tech/neondb")

    app = create_service_app("auth", env_file=None)

    assert app.state.database.url == "postgresql://neon@ep.neon.tech/neondb"


def test_service_without_database_gets_no_handle(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DB_URL", "postgresql://unused@db/app")

    app = create_service_app("utils", env_file=None)

    assert app.state.database is None
