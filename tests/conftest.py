"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory implementations of the domain ports (unit tests)
- A controllable clock for expiry tests
- A flow driver that walks a registration through its steps
- A PostgreSQL connection pool and a service over the PostgreSQL adapters
  (integration and adversarial tests),
  skipped when the database is not reachable
"""

import threading
from collections.abc import Generator
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from clinic_onboarding.adapters.repository import (
    PostgresAccountDirectory,
    PostgresRegistrationFinalizer,
    PostgresRegistrationRepository,
    PostgresSubscriptionTierCatalog,
    run_migrations,
)
from clinic_onboarding.config.settings import get_settings
from clinic_onboarding.domain.exceptions import (
    ConcurrentModification,
    EmailAlreadyRegistered,
    SubscriptionTierUnavailable,
)
from clinic_onboarding.domain.model import (
    BillingCycle,
    ClinicData,
    PaymentMethod,
    RegistrationRecord,
    SubscriptionTier,
)
from clinic_onboarding.domain.registration import RegistrationService


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class InMemoryRegistrationRepository:
    """RegistrationRepository backed by a dict, with the same version guard as PostgreSQL."""

    def __init__(self) -> None:
        self.records: dict[UUID, RegistrationRecord] = {}
        self.lock = threading.Lock()

    def add(self, record: RegistrationRecord) -> bool:
        with self.lock:
            if self._active(record.email) is not None:
                return False
            self.records[record.id] = record
            return True

    def get(self, registration_id: UUID) -> RegistrationRecord | None:
        return self.records.get(registration_id)

    def find_active_by_email(self, email: str) -> RegistrationRecord | None:
        return self._active(email)

    def find_latest_by_email(self, email: str) -> RegistrationRecord | None:
        matching = [record for record in self.records.values() if record.email == email]
        return max(matching, key=lambda record: record.created_at, default=None)

    def save(self, record: RegistrationRecord, expected_version: int) -> bool:
        with self.lock:
            current = self.records.get(record.id)
            if current is None or current.version != expected_version:
                return False
            self.records[record.id] = record
            return True

    def clinic_claimed(self, name: str, email: str, exclude_id: UUID) -> bool:
        for record in self.records.values():
            if record.id == exclude_id or record.is_terminal or record.clinic_data is None:
                continue
            clinic = record.clinic_data
            if clinic.name.lower() == name.lower() or clinic.email.lower() == email.lower():
                return True
        return False

    def _active(self, email: str) -> RegistrationRecord | None:
        for record in self.records.values():
            if record.email == email and not record.is_terminal:
                return record
        return None


class InMemoryDirectory:
    """AccountDirectory over the permanent users/clinics/roles the finalizer creates."""

    def __init__(self) -> None:
        self.users: dict[UUID, dict] = {}
        self.clinics: dict[UUID, dict] = {}
        self.roles: list[tuple[UUID, UUID, str]] = []

    def account_exists(self, email: str) -> bool:
        return any(user["email"] == email.lower() for user in self.users.values())

    def clinic_exists(self, name: str, email: str) -> bool:
        return any(
            clinic["name"].lower() == name.lower() or clinic["email"].lower() == email.lower()
            for clinic in self.clinics.values()
        )


class InMemoryTierCatalog:
    def __init__(self, tiers: list[SubscriptionTier]) -> None:
        self.tiers = {tier.code: tier for tier in tiers}

    def get_tier(self, code: str) -> SubscriptionTier | None:
        return self.tiers.get(code)

    def list_active_tiers(self) -> list[SubscriptionTier]:
        active = [tier for tier in self.tiers.values() if tier.is_active]
        return sorted(active, key=lambda tier: tier.sort_order)


class InMemoryFinalizer:
    """
    Stages every entity and applies them only after all steps succeed,
    mirroring the all-or-nothing PostgreSQL transaction.

    Set fail_after_clinic to simulate a crash between creating the clinic
    and creating the user.
    """

    def __init__(
        self,
        repository: InMemoryRegistrationRepository,
        directory: InMemoryDirectory,
        tiers: InMemoryTierCatalog,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.tiers = tiers
        self.fail_after_clinic = False
        self.calls = 0

    def finalize(self, record: RegistrationRecord, expected_version: int) -> RegistrationRecord:
        self.calls += 1
        tier = self.tiers.get_tier(record.subscription_data.tier_code)
        if tier is None or not tier.is_active:
            raise SubscriptionTierUnavailable("Subscription tier is no longer available")

        clinics = dict(self.directory.clinics)
        users = dict(self.directory.users)
        roles = list(self.directory.roles)

        clinic_id = uuid4()
        clinics[clinic_id] = {
            "name": record.clinic_data.name,
            "email": record.clinic_data.email,
            "tier": tier.code,
        }
        if self.fail_after_clinic:
            raise RuntimeError("simulated failure after clinic insert")

        if any(user["email"] == record.email for user in users.values()):
            raise EmailAlreadyRegistered("An account with this email already exists")
        user_id = uuid4()
        users[user_id] = {
            "email": record.email,
            "name": record.user_data.name,
            "password_hash": record.user_data.password_hash,
            "email_verified_at": record.email_verified_at,
            "clinic_id": clinic_id,
        }
        roles.append((user_id, clinic_id, "clinic_admin"))

        finalized = replace(record, created_user_id=user_id, created_clinic_id=clinic_id)
        if not self.repository.save(finalized, expected_version):
            raise ConcurrentModification(str(record.id))

        self.directory.clinics = clinics
        self.directory.users = users
        self.directory.roles = roles
        return finalized


class RecordingEmailSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_verification_code(self, email: str, code: str) -> None:
        self.sent.append((email, code))

    def last_code_for(self, email: str) -> str:
        return [code for sent_to, code in self.sent if sent_to == email][-1]


DEFAULT_TIERS = [
    SubscriptionTier("beta", "Beta", Decimal("50000"), Decimal("550000"), sort_order=1),
    SubscriptionTier("alpha", "Alpha", Decimal("100000"), Decimal("1000000"), sort_order=2),
    SubscriptionTier("theta", "Theta", Decimal("150000"), Decimal("1500000"), sort_order=3),
    SubscriptionTier(
        "legacy", "Legacy", Decimal("10000"), Decimal("100000"), is_active=False, sort_order=9
    ),
]


def make_clinic(name: str = "Clinic A", email: str = "info@clinic-a.com") -> ClinicData:
    return ClinicData(
        name=name,
        address="Jl. Sudirman No. 123, Jakarta Pusat",
        phone="+628123456789",
        email=email,
        province="DKI Jakarta",
    )


class FlowDriver:
    """Walks registrations through the workflow for tests that start mid-flow."""

    def __init__(self, service: RegistrationService, sender: RecordingEmailSender) -> None:
        self.service = service
        self.sender = sender

    def started(self, email: str = "a@b.com") -> RegistrationRecord:
        return self.service.start(email, "A", "secret1")

    def verified(self, email: str = "a@b.com") -> RegistrationRecord:
        record = self.started(email)
        return self.service.verify_email(record.id, self.sender.last_code_for(record.email))

    def with_clinic(self, email: str = "a@b.com") -> RegistrationRecord:
        record = self.verified(email)
        slug = email.split("@")[0]
        clinic = make_clinic(f"Clinic {slug}", f"info@clinic-{slug}.com")
        return self.service.submit_clinic_data(record.id, clinic)

    def subscribed(
        self, email: str = "a@b.com", tier_code: str = "alpha", cycle: BillingCycle = BillingCycle.MONTHLY
    ) -> RegistrationRecord:
        record = self.with_clinic(email)
        return self.service.select_subscription(record.id, tier_code, cycle)

    def paid(self, email: str = "a@b.com") -> RegistrationRecord:
        record = self.subscribed(email)
        return self.service.process_payment(
            record.id, PaymentMethod.CREDIT_CARD, record.subscription_data.amount
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def repository() -> InMemoryRegistrationRepository:
    return InMemoryRegistrationRepository()


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def tiers() -> InMemoryTierCatalog:
    return InMemoryTierCatalog(DEFAULT_TIERS)


@pytest.fixture
def finalizer(
    repository: InMemoryRegistrationRepository,
    directory: InMemoryDirectory,
    tiers: InMemoryTierCatalog,
) -> InMemoryFinalizer:
    return InMemoryFinalizer(repository, directory, tiers)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def service(
    repository: InMemoryRegistrationRepository,
    directory: InMemoryDirectory,
    tiers: InMemoryTierCatalog,
    finalizer: InMemoryFinalizer,
    email_sender: RecordingEmailSender,
    clock: FakeClock,
) -> RegistrationService:
    # bcrypt's minimum cost keeps the unit suite fast
    return RegistrationService(
        repository=repository,
        accounts=directory,
        tiers=tiers,
        finalizer=finalizer,
        email_sender=email_sender,
        bcrypt_cost=4,
        clock=clock,
    )


@pytest.fixture
def clinic_factory():
    """Build ClinicData with sensible defaults; override name/email per test."""
    return make_clinic


@pytest.fixture
def flow(service: RegistrationService, email_sender: RecordingEmailSender) -> FlowDriver:
    return FlowDriver(service, email_sender)


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Connection pool for integration tests; skips when PostgreSQL is down."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    try:
        pool.open(wait=True, timeout=5)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty the workflow and permanent-entity tables before a test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM registrations")
        conn.execute("DELETE FROM user_roles")
        conn.execute("DELETE FROM users")
        conn.execute("DELETE FROM clinics")
        conn.commit()
    yield


@pytest.fixture
def postgres_service(pool: ConnectionPool, email_sender: RecordingEmailSender) -> RegistrationService:
    """RegistrationService over the real PostgreSQL adapters."""
    return RegistrationService(
        repository=PostgresRegistrationRepository(pool),
        accounts=PostgresAccountDirectory(pool),
        tiers=PostgresSubscriptionTierCatalog(pool),
        finalizer=PostgresRegistrationFinalizer(pool),
        email_sender=email_sender,
        bcrypt_cost=4,
    )


@pytest.fixture
def postgres_flow(postgres_service: RegistrationService, email_sender: RecordingEmailSender) -> FlowDriver:
    return FlowDriver(postgres_service, email_sender)
