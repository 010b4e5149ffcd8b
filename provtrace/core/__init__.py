"""Coordination layer: storage client, uploads, ledger client, resolver."""
