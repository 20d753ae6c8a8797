"""
PostgreSQL lookups against permanent entities.

Implements the AccountDirectory and SubscriptionTierCatalog protocols:
read-only existence checks on users/clinics and tier lookups used while
a registration is in progress.
"""

from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from clinic_onboarding.domain.model import SubscriptionTier

_TIER_COLUMNS = "code, name, description, monthly_price, yearly_price, is_active, sort_order"


class PostgresAccountDirectory:
    """Implements AccountDirectory protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def account_exists(self, email: str) -> bool:
        sql = "SELECT 1 FROM users WHERE LOWER(email) = LOWER(%s)"

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            return cursor.fetchone() is not None

    def clinic_exists(self, name: str, email: str) -> bool:
        sql = """
            SELECT 1 FROM clinics
            WHERE LOWER(name) = LOWER(%s) OR LOWER(email) = LOWER(%s)
            LIMIT 1
        """

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (name, email))
            return cursor.fetchone() is not None


class PostgresSubscriptionTierCatalog:
    """Implements SubscriptionTierCatalog protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_tier(self, code: str) -> SubscriptionTier | None:
        sql = f"SELECT {_TIER_COLUMNS} FROM subscription_tiers WHERE code = %s"

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (code,))
            row = cursor.fetchone()
        return row_to_tier(row) if row is not None else None

    def list_active_tiers(self) -> list[SubscriptionTier]:
        sql = f"""
            SELECT {_TIER_COLUMNS} FROM subscription_tiers
            WHERE is_active
            ORDER BY sort_order, code
        """

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql)
            rows = cursor.fetchall()
        return [row_to_tier(row) for row in rows]


def row_to_tier(row: dict[str, Any]) -> SubscriptionTier:
    return SubscriptionTier(
        code=row["code"],
        name=row["name"],
        description=row["description"],
        monthly_price=row["monthly_price"],
        yearly_price=row["yearly_price"],
        is_active=row["is_active"],
        sort_order=row["sort_order"],
    )
