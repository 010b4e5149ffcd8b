"""Main Typer application: imports and registers all CLI commands.

Entry point: ``provtrace`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from provtrace.cli.commands.ledger import (
    add_event_cmd,
    deploy_cmd,
    events_cmd,
    product_cmd,
    register_cmd,
    verify_cmd,
)
from provtrace.cli.commands.session import login_cmd, logout_cmd
from provtrace.cli.commands.status import status_cmd
from provtrace.cli.commands.storage import resolve_cmd, upload_cmd

app = typer.Typer(
    name="provtrace",
    help="provtrace: product provenance over content-addressed storage and an append-only ledger.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="status", help="Show storage client and ledger status.")(status_cmd)
app.command(name="deploy", help="Deploy a tracer contract on the local ledger.")(deploy_cmd)
app.command(name="upload", help="Upload one file, or several as a directory.")(upload_cmd)
app.command(name="resolve", help="Fetch the JSON document stored at a CID.")(resolve_cmd)
app.command(name="register", help="Register a product with its metadata.")(register_cmd)
app.command(name="add-event", help="Append a trace event to a product.")(add_event_cmd)
app.command(name="events", help="List a product's trace events.")(events_cmd)
app.command(name="product", help="Show a product with metadata and events.")(product_cmd)
app.command(name="verify", help="Verify a product's event hash chain.")(verify_cmd)
app.command(name="login", help="Record the signed-in actor.")(login_cmd)
app.command(name="logout", help="Forget the signed-in actor.")(logout_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
