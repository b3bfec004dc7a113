"""
Root Typer application for the stowage CLI.

Commands:
    stowage providers        list registered provider types and capabilities
    stowage check CONFIG     validate a configuration and resolve its repositories
    stowage --version
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.table import Table

from stowage.cli.utils import console, fail, print_json
from stowage.config import load_config
from stowage.errors import StorageError
from stowage.logging import configure_logging
from stowage.providers.registry import ProviderRegistry
from stowage.service import StorageService
from stowage.settings import get_settings

app = typer.Typer(
    name="stowage",
    help="stowage: one storage contract over CouchDB, MongoDB, Redis, files and memory.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("stowage")
        except PackageNotFoundError:
            from stowage import __version__ as v
        typer.echo(f"stowage {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at debug level."),
) -> None:
    """stowage CLI: inspect providers and validate storage configuration."""
    settings = get_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.json_logs,
    )


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("providers")
def list_providers(
    as_json: bool = typer.Option(False, "--json", help="Output JSON."),
) -> None:
    """List registered provider types and the operations they support."""
    registry = ProviderRegistry()
    rows = []
    for name in registry.list_providers():
        provider_class = registry.get(name)
        rows.append(
            {
                "type": name,
                "class": f"{provider_class.__module__}.{provider_class.__name__}",
                "capabilities": sorted(c.value for c in provider_class.capabilities),
            }
        )

    if as_json:
        print_json(rows)
        return

    table = Table(title="Providers")
    table.add_column("Type", style="cyan")
    table.add_column("Class")
    table.add_column("Operations")
    for row in rows:
        table.add_row(row["type"], row["class"], ", ".join(row["capabilities"]))
    console.print(table)


@app.command("check")
def check_config(
    config_path: Path | None = typer.Argument(
        None,
        help="Configuration file (.toml, .json, .yaml). Defaults to STOWAGE_CONFIG_PATH.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Output JSON."),
) -> None:
    """Validate a configuration and resolve every repository without connecting."""
    path = config_path or get_settings().config_path
    if not path:
        fail("No configuration file given (argument CONFIG or STOWAGE_CONFIG_PATH)")

    try:
        config = load_config(path).validate_references()
        service = StorageService(config, auto_connect=False)
        repositories = asyncio.run(service.load_repositories()).unwrap()
    except StorageError as e:
        fail(e.message)

    rows = []
    for name in sorted(repositories):
        connection = config.repositories[name].connection
        rows.append(
            {
                "repository": name,
                "connection": connection,
                "type": config.connections[connection].type,
            }
        )

    if as_json:
        print_json(rows)
        return

    table = Table(title=f"Repositories in {path}")
    table.add_column("Repository", style="cyan")
    table.add_column("Connection")
    table.add_column("Provider")
    for row in rows:
        table.add_row(row["repository"], row["connection"], row["type"])
    console.print(table)
    console.print(f"[green]OK[/green] {len(rows)} repositories resolved")
