"""
Registration state model - statuses, steps and the step gates.

Pure decision logic with no I/O. The registration record is the only
persisted state of the onboarding workflow; everything the engine needs
to resume a flow lives in it.

Status Lifecycle (happy path, forward-only)
===========================================

    USER_CREATED -> EMAIL_VERIFIED -> CLINIC_CREATED -> SUBSCRIPTION_SELECTED
        -> [PAYMENT_PENDING ->] PAYMENT_COMPLETED -> COMPLETED

Absorbing states:
- COMPLETED: finalization ran, permanent entities exist
- CANCELLED: explicit cancel from any non-terminal status
- EXPIRED: discovered lazily on the first access past expires_at

Step gates (can_proceed_to_step):
    USER_FORM           always
    EMAIL_VERIFICATION  USER_FORM completed
    CLINIC_INFO         EMAIL_VERIFICATION completed AND email_verified
    SUBSCRIPTION        CLINIC_INFO completed
    PAYMENT             SUBSCRIPTION completed
    COMPLETE            PAYMENT completed AND payment status COMPLETED
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class RegistrationStatus(str, Enum):
    """Coarse lifecycle state of a registration record."""

    USER_CREATED = "user_created"
    EMAIL_VERIFIED = "email_verified"
    CLINIC_CREATED = "clinic_created"
    SUBSCRIPTION_SELECTED = "subscription_selected"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_COMPLETED = "payment_completed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {RegistrationStatus.COMPLETED, RegistrationStatus.CANCELLED, RegistrationStatus.EXPIRED}
)


class RegistrationStep(str, Enum):
    """Position in the fixed five-stage onboarding flow."""

    USER_FORM = "user_form"
    EMAIL_VERIFICATION = "email_verification"
    CLINIC_INFO = "clinic_info"
    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"
    COMPLETE = "complete"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    E_WALLET = "e_wallet"
    CRYPTO = "crypto"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class EmailStatus(str, Enum):
    """Answer to "can this email start a registration?"."""

    AVAILABLE = "available"
    EXISTS = "exists"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class UserData:
    name: str
    password_hash: str


@dataclass(frozen=True)
class ClinicData:
    name: str
    address: str
    phone: str
    email: str
    website: str | None = None
    description: str | None = None
    working_hours: str | None = None
    province: str | None = None


@dataclass(frozen=True)
class SubscriptionData:
    tier_code: str
    billing_cycle: BillingCycle
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class Payment:
    """Payment sub-state embedded in the record, tagged by its status."""

    status: PaymentStatus
    method: PaymentMethod
    amount: Decimal
    currency: str
    provider_ref: str | None = None
    paid_at: datetime | None = None


@dataclass(frozen=True)
class RegistrationMetadata:
    source: str | None = None
    referrer: str | None = None


@dataclass(frozen=True)
class SubscriptionTier:
    """Read-only view of a subscription tier from the catalog."""

    code: str
    name: str
    monthly_price: Decimal
    yearly_price: Decimal
    is_active: bool = True
    description: str | None = None
    sort_order: int = 0

    def price_for(self, cycle: BillingCycle) -> Decimal:
        if cycle is BillingCycle.YEARLY:
            return self.yearly_price
        return self.monthly_price


@dataclass
class RegistrationRecord:
    """
    Aggregate root of one registration attempt.

    Treated as a value by the engine: operations build an updated copy
    with dataclasses.replace() and persist it against the version they
    loaded, so a rejected operation never leaves a half-updated record.
    """

    id: UUID
    email: str
    status: RegistrationStatus
    current_step: RegistrationStep
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    completed_steps: tuple[RegistrationStep, ...] = ()
    user_data: UserData | None = None
    clinic_data: ClinicData | None = None
    subscription_data: SubscriptionData | None = None
    payment: Payment | None = None
    verification_code: str | None = None
    verification_sent_at: datetime | None = None
    verification_attempts: int = 0
    email_verified: bool = False
    email_verified_at: datetime | None = None
    metadata: RegistrationMetadata = field(default_factory=RegistrationMetadata)
    completed_at: datetime | None = None
    created_user_id: UUID | None = None
    created_clinic_id: UUID | None = None
    version: int = 0

    @property
    def payment_status(self) -> PaymentStatus:
        if self.payment is None:
            return PaymentStatus.PENDING
        return self.payment.status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        """True when a non-terminal record is past its expiry."""
        return not self.is_terminal and now > self.expires_at

    def has_completed(self, step: RegistrationStep) -> bool:
        return step in self.completed_steps


def with_completed_step(
    steps: tuple[RegistrationStep, ...], step: RegistrationStep
) -> tuple[RegistrationStep, ...]:
    """Append a step to the completed list, keeping it duplicate-free."""
    if step in steps:
        return steps
    return (*steps, step)


def is_payment_completed(record: RegistrationRecord) -> bool:
    return record.payment_status is PaymentStatus.COMPLETED


def can_proceed_to_step(record: RegistrationRecord, target: RegistrationStep) -> bool:
    """
    Decide whether the record may enter the target step.

    The completed-step list is the authoritative gate. CLINIC_INFO and
    COMPLETE additionally require the underlying fact (verified email,
    completed payment) so a step marked visited without the real effect
    cannot be used to advance.
    """
    if target is RegistrationStep.USER_FORM:
        return True
    if target is RegistrationStep.EMAIL_VERIFICATION:
        return record.has_completed(RegistrationStep.USER_FORM)
    if target is RegistrationStep.CLINIC_INFO:
        step_done = record.has_completed(RegistrationStep.EMAIL_VERIFICATION)
        verified = record.email_verified
        return step_done and verified
    if target is RegistrationStep.SUBSCRIPTION:
        return record.has_completed(RegistrationStep.CLINIC_INFO)
    if target is RegistrationStep.PAYMENT:
        return record.has_completed(RegistrationStep.SUBSCRIPTION)
    if target is RegistrationStep.COMPLETE:
        return record.has_completed(RegistrationStep.PAYMENT) and is_payment_completed(record)
    return False


def get_current_step(record: RegistrationRecord) -> RegistrationStep:
    """
    Derive where a client should resume the flow.

    Computed from data presence only, never from completed_steps, so a
    record whose step list disagrees with its payloads still reports the
    first step whose data is actually missing.
    """
    if record.user_data is None:
        return RegistrationStep.USER_FORM
    if not record.email_verified:
        return RegistrationStep.EMAIL_VERIFICATION
    if record.clinic_data is None:
        return RegistrationStep.CLINIC_INFO
    if record.subscription_data is None:
        return RegistrationStep.SUBSCRIPTION
    if not is_payment_completed(record):
        return RegistrationStep.PAYMENT
    return RegistrationStep.COMPLETE
