"""Repository adapters - Database implementations."""

from .directory import PostgresAccountDirectory, PostgresSubscriptionTierCatalog
from .finalization import PostgresRegistrationFinalizer
from .postgres import PostgresRegistrationRepository, run_migrations

__all__ = [
    "PostgresAccountDirectory",
    "PostgresRegistrationFinalizer",
    "PostgresRegistrationRepository",
    "PostgresSubscriptionTierCatalog",
    "run_migrations",
]
