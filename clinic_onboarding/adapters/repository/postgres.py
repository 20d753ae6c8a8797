"""
PostgreSQL repository adapter - Implements RegistrationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
registration record store using psycopg3 with raw SQL.

Concurrency Design:
-------------------
1. **Active-email uniqueness**: a partial unique index on
   registrations(email) over non-terminal statuses. add() inserts with
   ON CONFLICT DO NOTHING, so of two concurrent starts exactly one row
   lands and the loser sees rowcount 0.

2. **Optimistic versioning**: every write is
   UPDATE ... WHERE id = %s AND version = <version read>. A writer that
   read a stale row updates nothing and the domain raises
   ConcurrentModification, so two concurrent payment or completion calls
   cannot both advance the same record.

Step payloads are stored as JSONB columns; payment_status is mirrored
into its own column for querying.
"""

import logging
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from clinic_onboarding.domain.model import (
    BillingCycle,
    ClinicData,
    Payment,
    PaymentMethod,
    PaymentStatus,
    RegistrationMetadata,
    RegistrationRecord,
    RegistrationStatus,
    RegistrationStep,
    SubscriptionData,
    UserData,
)

logger = logging.getLogger(__name__)

_ACTIVE = "status NOT IN ('completed', 'cancelled', 'expired')"

_COLUMNS = """
    id, email, status, current_step, completed_steps, user_data, clinic_data,
    subscription_data, payment_data, verification_code, verification_sent_at,
    verification_attempts, email_verified,
    email_verified_at, metadata, created_at, updated_at, expires_at,
    completed_at, created_user_id, created_clinic_id, version
"""

UPDATE_SQL = """
    UPDATE registrations
    SET status = %(status)s,
        current_step = %(current_step)s,
        completed_steps = %(completed_steps)s,
        user_data = %(user_data)s,
        clinic_data = %(clinic_data)s,
        subscription_data = %(subscription_data)s,
        payment_data = %(payment_data)s,
        payment_status = %(payment_status)s,
        verification_code = %(verification_code)s,
        verification_sent_at = %(verification_sent_at)s,
        verification_attempts = %(verification_attempts)s,
        email_verified = %(email_verified)s,
        email_verified_at = %(email_verified_at)s,
        metadata = %(metadata)s,
        updated_at = %(updated_at)s,
        expires_at = %(expires_at)s,
        completed_at = %(completed_at)s,
        created_user_id = %(created_user_id)s,
        created_clinic_id = %(created_clinic_id)s,
        version = %(version)s
    WHERE id = %(id)s AND version = %(expected_version)s
"""


class PostgresRegistrationRepository:
    """
    Implements RegistrationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def add(self, record: RegistrationRecord) -> bool:
        """
        Insert a new registration record.

        Returns:
            True if inserted, False if an active record already holds
            the email (partial unique index conflict)
        """
        sql = """
            INSERT INTO registrations (
                id, email, status, current_step, completed_steps, user_data,
                clinic_data, subscription_data, payment_data, payment_status,
                verification_code, verification_sent_at, verification_attempts,
                email_verified, email_verified_at, metadata,
                created_at, updated_at, expires_at, completed_at,
                created_user_id, created_clinic_id, version
            )
            VALUES (
                %(id)s, %(email)s, %(status)s, %(current_step)s, %(completed_steps)s,
                %(user_data)s, %(clinic_data)s, %(subscription_data)s, %(payment_data)s,
                %(payment_status)s, %(verification_code)s, %(verification_sent_at)s,
                %(verification_attempts)s, %(email_verified)s,
                %(email_verified_at)s, %(metadata)s, %(created_at)s, %(updated_at)s,
                %(expires_at)s, %(completed_at)s, %(created_user_id)s,
                %(created_clinic_id)s, %(version)s
            )
            ON CONFLICT DO NOTHING
        """

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, record_params(record))
            conn.commit()
            return cursor.rowcount == 1

    def get(self, registration_id: UUID) -> RegistrationRecord | None:
        sql = f"SELECT {_COLUMNS} FROM registrations WHERE id = %s"

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (registration_id,))
            row = cursor.fetchone()
        return row_to_record(row) if row is not None else None

    def find_active_by_email(self, email: str) -> RegistrationRecord | None:
        sql = f"SELECT {_COLUMNS} FROM registrations WHERE email = %s AND {_ACTIVE}"

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (email,))
            row = cursor.fetchone()
        return row_to_record(row) if row is not None else None

    def find_latest_by_email(self, email: str) -> RegistrationRecord | None:
        sql = f"SELECT {_COLUMNS} FROM registrations WHERE email = %s ORDER BY created_at DESC LIMIT 1"

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (email,))
            row = cursor.fetchone()
        return row_to_record(row) if row is not None else None

    def save(self, record: RegistrationRecord, expected_version: int) -> bool:
        """
        Persist an updated record guarded by its previous version.

        Returns:
            True if the row was updated, False if the stored version moved on
        """
        params = record_params(record)
        params["expected_version"] = expected_version

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(UPDATE_SQL, params)
            conn.commit()
            return cursor.rowcount == 1

    def clinic_claimed(self, name: str, email: str, exclude_id: UUID) -> bool:
        sql = f"""
            SELECT 1 FROM registrations
            WHERE id <> %s
              AND {_ACTIVE}
              AND clinic_data IS NOT NULL
              AND (LOWER(clinic_data->>'name') = LOWER(%s)
                   OR LOWER(clinic_data->>'email') = LOWER(%s))
            LIMIT 1
        """

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (exclude_id, name, email))
            return cursor.fetchone() is not None


def record_params(record: RegistrationRecord) -> dict[str, Any]:
    """Map a record to the named parameters used by INSERT/UPDATE."""
    return {
        "id": record.id,
        "email": record.email,
        "status": record.status.value,
        "current_step": record.current_step.value,
        "completed_steps": Jsonb([step.value for step in record.completed_steps]),
        "user_data": _jsonb(record.user_data and asdict(record.user_data)),
        "clinic_data": _jsonb(record.clinic_data and asdict(record.clinic_data)),
        "subscription_data": _jsonb(
            record.subscription_data and _dump_subscription(record.subscription_data)
        ),
        "payment_data": _jsonb(record.payment and _dump_payment(record.payment)),
        "payment_status": record.payment_status.value,
        "verification_code": record.verification_code,
        "verification_sent_at": record.verification_sent_at,
        "verification_attempts": record.verification_attempts,
        "email_verified": record.email_verified,
        "email_verified_at": record.email_verified_at,
        "metadata": Jsonb(asdict(record.metadata)),
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "expires_at": record.expires_at,
        "completed_at": record.completed_at,
        "created_user_id": record.created_user_id,
        "created_clinic_id": record.created_clinic_id,
        "version": record.version,
    }


def row_to_record(row: dict[str, Any]) -> RegistrationRecord:
    """Rebuild a domain record from a dict_row."""
    user_data = row["user_data"]
    clinic_data = row["clinic_data"]
    subscription = row["subscription_data"]
    payment = row["payment_data"]
    return RegistrationRecord(
        id=row["id"],
        email=row["email"],
        status=RegistrationStatus(row["status"]),
        current_step=RegistrationStep(row["current_step"]),
        completed_steps=tuple(RegistrationStep(step) for step in row["completed_steps"]),
        user_data=UserData(**user_data) if user_data else None,
        clinic_data=ClinicData(**clinic_data) if clinic_data else None,
        subscription_data=_load_subscription(subscription) if subscription else None,
        payment=_load_payment(payment) if payment else None,
        verification_code=row["verification_code"],
        verification_sent_at=row["verification_sent_at"],
        verification_attempts=row["verification_attempts"],
        email_verified=row["email_verified"],
        email_verified_at=row["email_verified_at"],
        metadata=RegistrationMetadata(**(row["metadata"] or {})),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        expires_at=row["expires_at"],
        completed_at=row["completed_at"],
        created_user_id=row["created_user_id"],
        created_clinic_id=row["created_clinic_id"],
        version=row["version"],
    )


def _jsonb(value: dict[str, Any] | None) -> Jsonb | None:
    return Jsonb(value) if value is not None else None


def _dump_subscription(subscription: SubscriptionData) -> dict[str, Any]:
    return {
        "tier_code": subscription.tier_code,
        "billing_cycle": subscription.billing_cycle.value,
        "amount": str(subscription.amount),
        "currency": subscription.currency,
    }


def _load_subscription(data: dict[str, Any]) -> SubscriptionData:
    return SubscriptionData(
        tier_code=data["tier_code"],
        billing_cycle=BillingCycle(data["billing_cycle"]),
        amount=Decimal(data["amount"]),
        currency=data["currency"],
    )


def _dump_payment(payment: Payment) -> dict[str, Any]:
    return {
        "status": payment.status.value,
        "method": payment.method.value,
        "amount": str(payment.amount),
        "currency": payment.currency,
        "provider_ref": payment.provider_ref,
        "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
    }


def _load_payment(data: dict[str, Any]) -> Payment:
    paid_at = data.get("paid_at")
    return Payment(
        status=PaymentStatus(data["status"]),
        method=PaymentMethod(data["method"]),
        amount=Decimal(data["amount"]),
        currency=data["currency"],
        provider_ref=data.get("provider_ref"),
        paid_at=datetime.fromisoformat(paid_at) if paid_at else None,
    )


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: clinic_onboarding/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
