"""Storage commands: ``upload`` and ``resolve``."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.markup import escape

from provtrace.cli.common import build_service, console, run
from provtrace.models.storage import UploadFile


def upload_cmd(
    paths: list[Path] = typer.Argument(
        ..., exists=True, dir_okay=False, help="File(s) to upload."
    ),
) -> None:
    """Upload a file and print its CID.

    Several files are uploaded together as one directory; the printed CID
    is the directory's and each file is linked beneath it.
    """
    service = build_service()
    files = [UploadFile.from_path(path) for path in paths]
    if len(files) == 1:
        cid = run(service.upload(files[0]))
        console.print(f"[bold]{cid}[/bold]")
        console.print(f"[dim]{service.gateway_url(cid)}[/dim]")
        return

    cid = run(service.upload_directory(files))
    console.print(f"[bold]{cid}[/bold]")
    for file in files:
        console.print(f"[dim]{service.gateway_url(cid)}/{escape(file.name)}[/dim]")


def resolve_cmd(
    cid: str = typer.Argument(..., help="CID of a JSON document."),
) -> None:
    """Fetch the JSON document stored at a CID."""
    service = build_service()
    document = run(service.resolve(cid))
    console.print(escape(json.dumps(document, indent=2, ensure_ascii=False)))
