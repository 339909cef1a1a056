"""Operational tools for the ledger (backup listing, creation, restore, pruning)."""
