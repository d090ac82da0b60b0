"""
Evidence Service
================

HTTP surface of the custody engine.

This service provides:
- Evidence intake (hash, store, anchor on the ledger, register)
- Custody transfer and lifecycle state changes
- Access-logged evidence viewing
- Integrity verification against the registered hash
- Identity and ledger role administration

Version: 0.1.0
"""

__version__ = "0.1.0"
