"""
Evidence Service Routes
=======================

API route handlers for the evidence service.
"""

from services.evidence.routes import evidence, identities, ledger


__all__ = ["evidence", "identities", "ledger"]
