"""Ledger commands: ``deploy``, ``register``, ``add-event``, ``events``,
``product`` and ``verify``."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from provtrace.bridge.local_ledger import LedgerIntegrityError, ProductLedger
from provtrace.cli.common import build_service, console, err_console, load_config, run
from provtrace.models.ledger import GeoPoint, TraceEvent
from provtrace.models.storage import UploadFile
from provtrace.service import DEV_SIGNER_ADDRESS, save_deployment


def _events_table(events: list[TraceEvent]) -> Table:
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("#", justify="right")
    table.add_column("Status", no_wrap=True)
    table.add_column("Actor")
    table.add_column("Timestamp")
    table.add_column("Location")
    table.add_column("Metadata CID")
    for index, event in enumerate(events, start=1):
        location = f"{event.geo.lat:.5f}, {event.geo.lng:.5f}" if event.geo else "-"
        table.add_row(
            str(index),
            event.status.name,
            event.actor_address,
            event.timestamp.isoformat(),
            location,
            event.metadata_cid,
        )
    return table


def _geo(lat: float | None, lng: float | None) -> GeoPoint | None:
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        err_console.print("[red]Both --lat and --lng are required for a location.[/red]")
        raise typer.Exit(code=1)
    return GeoPoint(lat=lat, lng=lng)


def deploy_cmd() -> None:
    """Deploy a tracer contract on the local ledger and record its address."""
    config = load_config()
    ledger = ProductLedger(
        config.ledger_db_path,
        network_name=config.ledger_network,
        chain_id=config.ledger_chain_id,
    )
    address = ledger.deploy(config.signer_address or DEV_SIGNER_ADDRESS)
    path = save_deployment(config.data_dir, address, config.ledger_network)
    console.print(
        Panel(
            "\n".join([
                "[bold green]Tracer contract deployed.[/bold green]",
                "",
                f"[bold]Address:[/bold]  {address}",
                f"[bold]Network:[/bold]  {config.ledger_network} (chain {config.ledger_chain_id})",
                f"[bold]Recorded:[/bold] {path}",
            ]),
            title="[bold]provtrace[/bold]",
            border_style="green",
        )
    )
    console.print(address)


def register_cmd(
    name: str = typer.Argument(..., help="Product name."),
    description: str = typer.Option("", "--description", "-d", help="Product description."),
    origin: str = typer.Option("", "--origin", "-o", help="Place of origin."),
    file: Path = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="File to attach."
    ),
) -> None:
    """Register a product: upload its metadata (and file), then record it."""
    service = build_service()
    upload = UploadFile.from_path(file) if file is not None else None
    result = run(service.register_product_with_metadata(name, description, origin, upload))

    lines = [
        "[bold green]Product registered.[/bold green]",
        "",
        f"[bold]Product ID:[/bold]   {result.product_id}",
        f"[bold]Metadata CID:[/bold] {result.metadata_cid}",
        f"[bold]Transaction:[/bold]  {result.registration.tx_ref}",
        f"[bold]Block:[/bold]        {result.registration.block_ref}",
        f"[bold]Gas used:[/bold]     {result.registration.gas_used}",
    ]
    if result.file_cid:
        lines.append(f"[bold]File:[/bold]         {service.gateway_url(result.file_cid)}")
    console.print(Panel("\n".join(lines), title=f"[bold]{name}[/bold]", border_style="green"))


def add_event_cmd(
    product_id: int = typer.Argument(..., help="Product id."),
    status: str = typer.Argument(
        ..., help="CREATED, HARVESTED, PROCESSED, SHIPPED, DELIVERED (or 0-4)."
    ),
    lat: float = typer.Option(None, "--lat", help="Latitude of the event."),
    lng: float = typer.Option(None, "--lng", help="Longitude of the event."),
    notes: str = typer.Option("", "--notes", "-n", help="Free-form notes."),
) -> None:
    """Append a trace event to a product."""
    geo = _geo(lat, lng)
    service = build_service()
    recorded = run(service.record_trace_event(product_id, status, geo, notes))
    console.print(
        f"[green]{recorded.status.name}[/green] recorded for product "
        f"{recorded.product_id}: {recorded.tx_ref}"
    )
    console.print(f"[dim]metadata: {service.gateway_url(recorded.metadata_cid)}[/dim]")


def events_cmd(
    product_id: int = typer.Argument(..., help="Product id."),
) -> None:
    """List a product's trace events, oldest first."""
    service = build_service()
    events = run(service.get_product_events(product_id))
    if not events:
        console.print(f"[dim]Product {product_id} has no trace events.[/dim]")
        return
    table = _events_table(events)
    table.title = f"Trace events of product {product_id}"
    console.print(table)


def product_cmd(
    product_id: int = typer.Argument(..., help="Product id."),
) -> None:
    """Show a product with its metadata and its trace events."""
    service = build_service()
    view = run(service.get_product_with_metadata(product_id))
    product = view.product

    lines = [
        f"[bold]Creator:[/bold]      {product.creator_address}",
        f"[bold]Created:[/bold]      {product.created_at.isoformat() if product.created_at else '-'}",
        f"[bold]Metadata CID:[/bold] {product.metadata_cid}",
        "",
    ]
    if view.metadata is not None:
        lines.append(escape(json.dumps(view.metadata, indent=2, ensure_ascii=False)))
    else:
        lines.append(f"[yellow]Metadata unavailable:[/yellow] {view.metadata_error}")
    console.print(
        Panel("\n".join(lines), title=f"[bold]Product {product.id}[/bold]", border_style="cyan")
    )
    if view.events:
        console.print(_events_table(view.events))
    else:
        console.print("[dim]No trace events.[/dim]")


def verify_cmd(
    product_id: int = typer.Argument(..., help="Product id."),
) -> None:
    """Verify the event hash chain of a product on the local ledger."""
    config = load_config()
    ledger = ProductLedger(
        config.ledger_db_path,
        network_name=config.ledger_network,
        chain_id=config.ledger_chain_id,
    )
    try:
        ledger.verify_chain(product_id)
    except LedgerIntegrityError as exc:
        err_console.print(f"[red]Integrity check failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Event chain of product {product_id} is intact.[/green]")
