"""
API module for the ledger - the HTTP surface.

This module handles:
- The FastAPI application factory and its lifespan
- Token issuance and request authentication
- Route handlers over the lifecycle services
"""

from .app import create_app
from .auth import Principal, TokenService, extract_token

__all__ = [
    "Principal",
    "TokenService",
    "create_app",
    "extract_token",
]
