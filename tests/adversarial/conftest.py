"""
Shared fixtures for adversarial tests.

Every test here hammers the PostgreSQL-backed service from several
threads at once and starts from empty tables.
"""

import pytest


@pytest.fixture(autouse=True)
def _empty_tables(clean_database: None) -> None:
    """Clean registrations and permanent entities before each test."""
