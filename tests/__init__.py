"""
Arena Market test suite.

- tests/unit/         in-memory store, in-process hub, mocks; no services
- tests/integration/  PostgreSQL and Redis through testcontainers

Select with markers: ``pytest -m unit``, ``pytest -m "integration and not redis"``.
"""
