"""
PostgreSQL finalization adapter - Implements RegistrationFinalizer protocol.

Turns a paid registration into permanent entities inside ONE database
transaction:

1. Re-read the selected subscription tier (FOR SHARE) - it may have been
   removed or deactivated since selection
2. Insert the clinic, linked to the tier
3. Insert the user with the already-hashed password, marked verified
   with the original verification timestamp
4. Link the user to the clinic
5. Grant the clinic_admin role scoped to the clinic
6. Write the completed registration record, guarded by its version

Any exception inside the transaction block rolls back every insert and
leaves the registration row at its pre-completion state, so the caller
can retry after fixing the cause.
"""

import logging
from dataclasses import replace
from uuid import UUID

from psycopg import Cursor, errors
from psycopg_pool import ConnectionPool

from clinic_onboarding.domain.exceptions import (
    ClinicAlreadyExists,
    ConcurrentModification,
    EmailAlreadyRegistered,
    RegistrationError,
    SubscriptionTierUnavailable,
)
from clinic_onboarding.domain.model import RegistrationRecord

from .postgres import UPDATE_SQL, record_params

logger = logging.getLogger(__name__)

CLINIC_ADMIN_ROLE = "clinic_admin"


class PostgresRegistrationFinalizer:
    """
    Implements RegistrationFinalizer protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def finalize(self, record: RegistrationRecord, expected_version: int) -> RegistrationRecord:
        """
        Create clinic, user and role and persist the completed record atomically.

        Args:
            record: Registration already carrying status COMPLETED
            expected_version: Version the engine loaded

        Returns:
            The record with created_user_id and created_clinic_id set
        """
        if record.user_data is None or record.clinic_data is None or record.subscription_data is None:
            raise RegistrationError("Registration is missing data required for finalization")

        try:
            with self._pool.connection() as conn, conn.transaction(), conn.cursor() as cursor:
                tier_id = self._lock_tier(cursor, record.subscription_data.tier_code)
                clinic_id = self._insert_clinic(cursor, record, tier_id)
                user_id = self._insert_user(cursor, record)
                self._link_user_to_clinic(cursor, user_id, clinic_id)
                self._grant_clinic_admin(cursor, user_id, clinic_id)

                finalized = replace(record, created_user_id=user_id, created_clinic_id=clinic_id)
                self._mark_completed(cursor, finalized, expected_version)
        except errors.UniqueViolation as exc:
            logger.warning("Finalization of %s hit unique constraint: %s", record.id, exc)
            constraint = exc.diag.constraint_name or ""
            if constraint.startswith("users_"):
                raise EmailAlreadyRegistered("An account with this email already exists") from exc
            if constraint.startswith("clinics_"):
                raise ClinicAlreadyExists("A clinic with this name or email already exists") from exc
            raise

        logger.info("Finalized registration %s (user %s, clinic %s)", record.id, user_id, clinic_id)
        return finalized

    def _lock_tier(self, cursor: Cursor, tier_code: str) -> UUID:
        cursor.execute(
            "SELECT id, is_active FROM subscription_tiers WHERE code = %s FOR SHARE",
            (tier_code,),
        )
        row = cursor.fetchone()
        if row is None or not row[1]:
            raise SubscriptionTierUnavailable(f"Subscription tier {tier_code} is no longer available")
        return row[0]

    def _insert_clinic(self, cursor: Cursor, record: RegistrationRecord, tier_id: UUID) -> UUID:
        clinic = record.clinic_data
        cursor.execute(
            """
            INSERT INTO clinics (
                name, address, phone, email, website, description, working_hours,
                province, status, subscription_tier_id, billing_cycle
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 'active', %s, %s)
            RETURNING id
            """,
            (
                clinic.name,
                clinic.address,
                clinic.phone,
                clinic.email,
                clinic.website,
                clinic.description,
                clinic.working_hours,
                clinic.province,
                tier_id,
                record.subscription_data.billing_cycle.value,
            ),
        )
        return cursor.fetchone()[0]

    def _insert_user(self, cursor: Cursor, record: RegistrationRecord) -> UUID:
        cursor.execute(
            """
            INSERT INTO users (email, password_hash, name, email_verified, email_verified_at, is_active)
            VALUES (%s, %s, %s, TRUE, %s, TRUE)
            RETURNING id
            """,
            (
                record.email,
                record.user_data.password_hash,
                record.user_data.name,
                record.email_verified_at,
            ),
        )
        return cursor.fetchone()[0]

    def _link_user_to_clinic(self, cursor: Cursor, user_id: UUID, clinic_id: UUID) -> None:
        cursor.execute("UPDATE users SET clinic_id = %s WHERE id = %s", (clinic_id, user_id))

    def _grant_clinic_admin(self, cursor: Cursor, user_id: UUID, clinic_id: UUID) -> None:
        cursor.execute(
            "INSERT INTO user_roles (user_id, clinic_id, role) VALUES (%s, %s, %s)",
            (user_id, clinic_id, CLINIC_ADMIN_ROLE),
        )

    def _mark_completed(
        self, cursor: Cursor, record: RegistrationRecord, expected_version: int
    ) -> None:
        params = record_params(record)
        params["expected_version"] = expected_version
        cursor.execute(UPDATE_SQL, params)
        if cursor.rowcount != 1:
            raise ConcurrentModification(str(record.id))
