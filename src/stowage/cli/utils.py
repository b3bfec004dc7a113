"""
CLI utility helpers: consoles and error reporting.
"""

from __future__ import annotations

import json
from typing import Any, NoReturn

import typer
from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def fail(message: str, code: int = 1) -> NoReturn:
    """Print an error and exit with ``code``."""
    err_console.print(f"[bold red]Error[/bold red]: {message}", soft_wrap=True)
    raise typer.Exit(code=code)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))
