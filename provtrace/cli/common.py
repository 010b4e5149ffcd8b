"""Helpers shared by the CLI commands: config, logging, service, async runner."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler

from provtrace.config import ProdConfig
from provtrace.core.production_guard import ProductionConfigError
from provtrace.errors import ProvtraceError
from provtrace.service import ProvenanceService

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route the root logger through a single RichHandler on stderr."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(RichHandler(console=err_console, show_path=False))
    root.setLevel(level.upper())


def load_config() -> ProdConfig:
    """Fresh config per invocation so env changes are picked up."""
    config = ProdConfig()
    configure_logging(config.log_level)
    return config


def build_service(config: ProdConfig | None = None) -> ProvenanceService:
    config = config or load_config()
    try:
        return ProvenanceService.from_config(config)
    except ProductionConfigError as exc:
        err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc


def run(coro: Awaitable[T]) -> T:
    """Run *coro* to completion, turning provtrace errors into exit code 1."""
    try:
        return asyncio.run(_await(coro))
    except ProvtraceError as exc:
        kind = getattr(exc, "kind", None)
        label = f"{type(exc).__name__}" + (f" ({kind.value})" if kind is not None else "")
        err_console.print(f"[red]{label}:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        err_console.print(f"[red]Invalid input:[/red] {exc}")
        raise typer.Exit(code=1) from exc


async def _await(coro: Awaitable[T]) -> T:
    return await coro
