#!/usr/bin/env python3
"""svcboot command line interface"""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import load_database_settings, load_service_settings
from .constants import DEFAULT_ENV_FILE
from .domain.exceptions import ConfigurationError, UnknownServiceError
from .infrastructure.database.handle import DatabaseHandle
from .server import serve as serve_service
from .services.registry import SERVICES, get_service

app = typer.Typer(
    name="svcboot",
    help="Bootstrap and run the svcboot HTTP services.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

EnvFileOption = Annotated[
    Path,
    typer.Option("--env-file", help="dotenv file read after the process environment"),
]


def _fail(error: Exception) -> typer.Exit:
    err_console.print(f"[red]✗[/red] {escape(str(error))}", soft_wrap=True)
    return typer.Exit(code=1)


@app.command("services")
def list_services() -> None:
    """List the registered services."""
    table = Table(title="Services")
    table.add_column("Name")
    table.add_column("Display name")
    table.add_column("Mount prefix")
    table.add_column("Database variable")

    for service in SERVICES.values():
        table.add_row(
            service.name,
            service.display_name,
            service.mount_prefix,
            service.database_env_var or "-",
        )
    console.print(table)


@app.command()
def check(
    service: Annotated[str, typer.Argument(help="Service name")],
    env_file: EnvFileOption = Path(DEFAULT_ENV_FILE),
) -> None:
    """Validate a service's configuration without starting it."""
    try:
        definition = get_service(service)
        settings = load_service_settings(env_file)
        env_var = definition.resolve_database_env_var(settings.database_env_var)
        database_url = None
        if env_var is not None:
            database_settings = load_database_settings(env_var, env_file)
            database_url = DatabaseHandle(database_settings.url).redacted_url
    except (ConfigurationError, UnknownServiceError) as e:
        raise _fail(e) from e

    table = Table(title=definition.display_name, show_header=False)
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Mount prefix", definition.mount_prefix)
    table.add_row("Router", settings.router or definition.router)
    table.add_row("Listen", f"{settings.host}:{settings.port}")
    table.add_row("Body limit", f"{settings.body_limit} bytes")
    table.add_row("CORS origins", ", ".join(settings.cors_origins))
    table.add_row(
        "Request timeout",
        f"{settings.request_timeout_seconds:g}s"
        if settings.request_timeout_seconds
        else "disabled",
    )
    table.add_row("Database", f"{env_var}={database_url}" if env_var else "none")
    console.print(table)
    console.print("[green]✓[/green] Configuration is valid")


@app.command()
def serve(
    service: Annotated[str, typer.Argument(help="Service name")],
    host: Annotated[str | None, typer.Option(help="Override HOST")] = None,
    port: Annotated[int | None, typer.Option(help="Override PORT")] = None,
    env_file: EnvFileOption = Path(DEFAULT_ENV_FILE),
) -> None:
    """Validate configuration and run a service."""
    overrides = {
        key: value
        for key, value in {"host": host, "port": port}.items()
        if value is not None
    }
    try:
        serve_service(service, env_file, **overrides)
    except (ConfigurationError, UnknownServiceError) as e:
        raise _fail(e) from e


def main() -> None:
    app()


if __name__ == "__main__":
    main()
