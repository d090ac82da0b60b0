"""
Custody Test Suite
==================

Test organization:
- tests/unit/       - Engine, storage, ledger and auth tests (no external services)
- tests/services/   - HTTP API tests against in-memory components

Run tests:
    pytest                          # All tests
    pytest tests/unit               # Unit tests only
    pytest --cov=custody            # With coverage
"""
