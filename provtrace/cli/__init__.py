"""provtrace CLI: Typer-based command-line interface.

Provides the ``provtrace`` command with subcommands for registering
products, appending trace events, uploading blobs, resolving metadata and
inspecting the storage client and ledger.

All output uses Rich for formatted terminal display.
"""
