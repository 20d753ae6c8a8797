"""
Integration test configuration.

Every test here runs against a real PostgreSQL database (see the session
`pool` fixture in tests/conftest.py) and starts from empty tables.
"""

import pytest


@pytest.fixture(autouse=True)
def _empty_tables(clean_database: None) -> None:
    """Clean registrations and permanent entities before each test."""
