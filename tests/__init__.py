"""
Luminax test suite.

- tests/unit/          services against a per-test SQLite file, pure domain rules
- tests/integration/   DatabaseService contract; PostgreSQL via testcontainers
- tests/api/           the FastAPI app through httpx's ASGITransport

Run a slice with markers, e.g. `pytest -m "unit and not postgres"`.
"""
