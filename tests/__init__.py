"""
Concrete Ledger Test Suite.

This package contains:
- unit/: Unit tests (temporary directories, no network)
- integration/: HTTP API through TestClient and the backup CLI
"""
