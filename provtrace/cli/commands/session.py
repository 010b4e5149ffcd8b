"""Session commands: ``login`` and ``logout``.

The wallet signature flow happens elsewhere; ``login`` only records the
signed-in address so ledger writes can be attributed to it.
"""

from __future__ import annotations

import typer

from provtrace.cli.common import console, load_config
from provtrace.core.session import SessionStore


def _store() -> SessionStore:
    config = load_config()
    return SessionStore(config.session_path, ttl_hours=config.session_ttl_hours)


def login_cmd(
    address: str = typer.Argument(..., help="Account address of the actor."),
    signature: str = typer.Option("", "--signature", "-s", help="Login signature."),
) -> None:
    """Record the signed-in actor for subsequent ledger writes."""
    session = _store().save(address, signature)
    console.print(
        f"[green]Signed in as[/green] {session.address} "
        f"[dim](until {session.expires_at.isoformat()})[/dim]"
    )


def logout_cmd() -> None:
    """Forget the signed-in actor."""
    _store().clear()
    console.print("[dim]Signed out.[/dim]")
