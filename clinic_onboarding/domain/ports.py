"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from typing import Protocol
from uuid import UUID

from .model import RegistrationRecord, SubscriptionTier


class RegistrationRepository(Protocol):
    """Port interface for registration record persistence."""

    def add(self, record: RegistrationRecord) -> bool:
        """
        Insert a new registration record.

        Returns:
            True if inserted, False if another active (non-terminal)
            record already holds the email
        """
        ...

    def get(self, registration_id: UUID) -> RegistrationRecord | None:
        """Load a record by id, or None if unknown."""
        ...

    def find_active_by_email(self, email: str) -> RegistrationRecord | None:
        """Load the single non-terminal record for a normalized email."""
        ...

    def find_latest_by_email(self, email: str) -> RegistrationRecord | None:
        """Load the most recently created record for a normalized email, in any status."""
        ...

    def save(self, record: RegistrationRecord, expected_version: int) -> bool:
        """
        Persist an updated record if nobody else wrote it since it was read.

        The stored version must equal expected_version; on success the
        stored version becomes record.version.

        Returns:
            True if written, False if the stored version moved on
        """
        ...

    def clinic_claimed(self, name: str, email: str, exclude_id: UUID) -> bool:
        """
        Check whether another active registration already submitted a
        clinic with the same name or email (case-insensitive).
        """
        ...


class AccountDirectory(Protocol):
    """Port interface for existence checks against permanent entities."""

    def account_exists(self, email: str) -> bool:
        ...

    def clinic_exists(self, name: str, email: str) -> bool:
        """True if a permanent clinic has the same name or email."""
        ...


class SubscriptionTierCatalog(Protocol):
    """Port interface for subscription tier lookup."""

    def get_tier(self, code: str) -> SubscriptionTier | None:
        ...

    def list_active_tiers(self) -> list[SubscriptionTier]:
        ...


class RegistrationFinalizer(Protocol):
    """Port interface for the all-or-nothing completion transaction."""

    def finalize(self, record: RegistrationRecord, expected_version: int) -> RegistrationRecord:
        """
        Create the permanent clinic, user and admin role from a completed
        record and persist the record, as one atomic unit.

        The record passed in already carries its completed status and
        timestamps; the finalizer fills in created_user_id and
        created_clinic_id. If any step fails nothing is committed and the
        stored record keeps its previous state.

        Raises:
            SubscriptionTierUnavailable: tier removed since selection
            EmailAlreadyRegistered / ClinicAlreadyExists: unique collision
            ConcurrentModification: record changed since it was loaded
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send verification code to email address.

        Args:
            email: Recipient email address
            code: numeric verification code
        """
        ...
