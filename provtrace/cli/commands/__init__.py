"""Subcommands of the ``provtrace`` CLI."""
