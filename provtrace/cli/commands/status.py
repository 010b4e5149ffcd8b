"""``provtrace status``: storage client and ledger health.

Reports the storage client lifecycle, its current space and tier, the
number of uploads in flight, and the ledger contract, network and signer.
"""

from __future__ import annotations

import typer
from rich.panel import Panel
from rich.table import Table

from provtrace.cli.common import build_service, console, run
from provtrace.errors import StorageInitError
from provtrace.models.ledger import LedgerInfo
from provtrace.models.storage import ClientStatus
from provtrace.service import ProvenanceService


async def _collect(service: ProvenanceService, connect: bool) -> tuple[ClientStatus, LedgerInfo]:
    if connect:
        try:
            await service.clients.get_client()
        except StorageInitError as exc:
            console.print(f"[red]Storage client failed to initialize:[/red] {exc}")
    return service.get_client_status(), await service.get_ledger_info()


def status_cmd(
    connect: bool = typer.Option(
        False,
        "--connect",
        "-c",
        help="Initialize the storage client before reporting.",
    ),
) -> None:
    """Show storage client and ledger status.

    Without ``--connect`` the storage client is reported as-is, which in a
    fresh process is uninitialized.
    """
    service = build_service()
    client, ledger = run(_collect(service, connect))

    def mark(ok: bool) -> str:
        return "[green]Yes[/green]" if ok else "[red]No[/red]"

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Component", min_width=16)
    table.add_column("Ready", width=8, justify="center")
    table.add_column("Details")

    storage_details = [f"state={client.state.value}"]
    if client.agent_id:
        storage_details.append(f"agent={client.agent_id}")
    if client.space_id:
        tier = client.space_tier.value if client.space_tier else "unknown"
        storage_details.append(f"space={client.space_id} ({tier})")
    if client.error:
        storage_details.append(f"error={client.error}")
    table.add_row("Storage client", mark(client.is_ready), ", ".join(storage_details))
    table.add_row(
        "Uploads in flight", "", str(service.active_upload_count())
    )

    if ledger.is_ready:
        ledger_details = (
            f"contract={ledger.contract_address}, network={ledger.network_name} "
            f"(chain {ledger.chain_id}), signer={ledger.signer_address}"
        )
    else:
        ledger_details = ledger.error or "not connected"
    table.add_row("Ledger", mark(ledger.is_ready), ledger_details)

    console.print(
        Panel(
            table,
            title="[bold]provtrace status[/bold]",
            subtitle=f"[dim]{service.config.environment}[/dim]",
            border_style="cyan",
        )
    )
