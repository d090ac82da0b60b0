"""
Custody Services
================

HTTP services built on the custody engine.

Services:
- evidence: evidence intake, custody, integrity and role administration
"""

__all__ = [
    "evidence",
]
