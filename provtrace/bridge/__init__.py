"""Bridges to the external systems: storage network and ledger.

Each bridge defines the protocol the core depends on and ships a local,
in-process implementation of it.
"""
