"""
Registration domain service - clinic onboarding workflow engine.

This module contains the state machine that takes an anonymous visitor
from "enter email" to a permanent user + clinic + clinic-admin role.

Every operation is an independent unit of work:

    load -> check expiry -> validate -> build updated record -> persist

Records are never mutated in place. Validation runs before anything is
written, and writes go through an optimistic version check, so a
rejected or racing request leaves the stored record exactly as it was.
The one exception is a wrong verification code, which is counted.

Operations and the transitions they perform:

    start                  -> USER_CREATED          (step USER_FORM)
    verify_email           -> EMAIL_VERIFIED        (step EMAIL_VERIFICATION)
    submit_clinic_data     -> CLINIC_CREATED        (step CLINIC_INFO)
    select_subscription    -> SUBSCRIPTION_SELECTED (step SUBSCRIPTION)
    process_payment        -> PAYMENT_PENDING | PAYMENT_COMPLETED (step PAYMENT)
    confirm_payment        -> PAYMENT_COMPLETED     (step PAYMENT)
    complete_registration  -> COMPLETED             (step COMPLETE, via finalizer)
    cancel                 -> CANCELLED

Expiry is lazy: a record past expires_at is flipped to EXPIRED the first
time any operation touches it. That access and every later one fail with
RegistrationExpired.

Each emailed code has its own shorter lifetime, a failed-attempt limit and
a resend cooldown.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import bcrypt

from .exceptions import (
    ClinicAlreadyExists,
    ConcurrentModification,
    EmailAlreadyRegistered,
    EmailAlreadyVerified,
    InvalidSubscriptionTier,
    InvalidVerificationCode,
    MissingRegistrationData,
    PaymentAlreadyCompleted,
    PaymentAmountMismatch,
    PaymentCurrencyMismatch,
    PaymentNotPending,
    RegistrationClosed,
    RegistrationExpired,
    RegistrationNotFound,
    ResendTooSoon,
    StepAlreadyCompleted,
    StepNotAllowed,
    VerificationCodeExpired,
    VerificationLocked,
)
from .model import (
    BillingCycle,
    ClinicData,
    EmailStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    RegistrationMetadata,
    RegistrationRecord,
    RegistrationStatus,
    RegistrationStep,
    SubscriptionData,
    SubscriptionTier,
    UserData,
    can_proceed_to_step,
    is_payment_completed,
    with_completed_step,
)
from .ports import (
    AccountDirectory,
    EmailSender,
    RegistrationFinalizer,
    RegistrationRepository,
    SubscriptionTierCatalog,
)
from .verification import DEFAULT_CODE_LENGTH, codes_match, generate_verification_code

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=7)
DEFAULT_CODE_TTL = timedelta(minutes=15)
DEFAULT_RESEND_COOLDOWN = timedelta(minutes=5)
DEFAULT_MAX_VERIFICATION_ATTEMPTS = 3

_EXPIRED_MESSAGE = "Registration expired, please start over"

_RESUBMITTABLE_PAYMENT = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RegistrationService:
    """
    Domain service for the clinic onboarding workflow.

    Holds no per-registration state: everything needed to resume a flow
    is read back from the repository on each call.
    """

    repository: RegistrationRepository
    accounts: AccountDirectory
    tiers: SubscriptionTierCatalog
    finalizer: RegistrationFinalizer
    email_sender: EmailSender
    ttl: timedelta = DEFAULT_TTL
    code_length: int = DEFAULT_CODE_LENGTH
    code_ttl: timedelta = DEFAULT_CODE_TTL
    max_verification_attempts: int = DEFAULT_MAX_VERIFICATION_ATTEMPTS
    resend_cooldown: timedelta = DEFAULT_RESEND_COOLDOWN
    bcrypt_cost: int = 10
    # Non-bank methods complete immediately until a gateway callback exists.
    simulate_instant_payments: bool = True
    default_currency: str = "IDR"
    clock: Callable[[], datetime] = _utc_now

    def start(
        self,
        email: str,
        name: str,
        password: str,
        source: str | None = None,
        referrer: str | None = None,
    ) -> RegistrationRecord:
        """
        Start a registration, or resume the active one for this email.

        Args:
            email: Candidate account email (will be normalized)
            name: Display name of the future clinic admin
            password: Plaintext password (hashed before storage)
            source: Optional marketing source
            referrer: Optional referrer

        Returns:
            The new record, or the existing active record unchanged

        Raises:
            EmailAlreadyRegistered: A permanent account uses this email
        """
        normalized_email = self._normalize_email(email)
        if self.accounts.account_exists(normalized_email):
            raise EmailAlreadyRegistered("An account with this email already exists")

        existing = self._active_for_email(normalized_email)
        if existing is not None:
            logger.info("Resuming registration %s for %s", existing.id, normalized_email)
            return existing

        now = self.clock()
        code = generate_verification_code(self.code_length)
        record = RegistrationRecord(
            id=uuid4(),
            email=normalized_email,
            status=RegistrationStatus.USER_CREATED,
            current_step=RegistrationStep.USER_FORM,
            completed_steps=(RegistrationStep.USER_FORM,),
            created_at=now,
            updated_at=now,
            expires_at=now + self.ttl,
            user_data=UserData(name=name.strip(), password_hash=self._hash_password(password)),
            verification_code=code,
            verification_sent_at=now,
            metadata=RegistrationMetadata(source=source, referrer=referrer),
            version=1,
        )

        if not self.repository.add(record):
            # Another request claimed the email between our lookup and insert.
            # A winner already past its expiry is expired here, never returned.
            winner = self._active_for_email(normalized_email)
            if winner is None:
                raise ConcurrentModification(normalized_email)
            logger.info("Registration race for %s resolved to %s", normalized_email, winner.id)
            return winner

        logger.info("Registration %s started for %s", record.id, normalized_email)
        self.email_sender.send_verification_code(normalized_email, code)
        return record

    def verify_email(self, registration_id: UUID, code: str) -> RegistrationRecord:
        """
        Consume the verification code and mark the email verified.

        The stored code is cleared on success, so the same code can never
        verify twice. A wrong code is counted against the record; once
        max_verification_attempts is reached the code is cleared and only
        a resend unlocks verification again.

        Raises:
            VerificationLocked: Too many wrong codes for the current code
            VerificationCodeExpired: The code is older than code_ttl
            InvalidVerificationCode: The code does not match
        """
        record = self._load_open(registration_id)
        if record.email_verified:
            raise EmailAlreadyVerified("Email is already verified")
        self._require_step(record, RegistrationStep.EMAIL_VERIFICATION)

        if record.verification_attempts >= self.max_verification_attempts:
            raise VerificationLocked("Too many failed attempts, request a new code")
        if self._code_expired(record):
            raise VerificationCodeExpired("Verification code expired, request a new code")

        if not codes_match(record.verification_code, code.strip()):
            attempts = record.verification_attempts + 1
            logger.warning(
                "Invalid verification code for registration %s (attempt %d)", record.id, attempts
            )
            if attempts >= self.max_verification_attempts:
                self._commit(record, verification_attempts=attempts, verification_code=None)
                logger.warning("Verification locked for registration %s", record.id)
                raise VerificationLocked("Too many failed attempts, request a new code")
            self._commit(record, verification_attempts=attempts)
            raise InvalidVerificationCode("Invalid verification code")

        return self._commit(
            record,
            email_verified=True,
            email_verified_at=self.clock(),
            verification_code=None,
            status=RegistrationStatus.EMAIL_VERIFIED,
            current_step=RegistrationStep.EMAIL_VERIFICATION,
            completed_steps=with_completed_step(
                record.completed_steps, RegistrationStep.EMAIL_VERIFICATION
            ),
        )

    def submit_clinic_data(self, registration_id: UUID, clinic: ClinicData) -> RegistrationRecord:
        """
        Store the clinic profile.

        Raises:
            ClinicAlreadyExists: Name or email used by a permanent clinic or
                by another active registration
            StepAlreadyCompleted: Clinic data was already submitted
        """
        record = self._load_open(registration_id)
        self._require_step(record, RegistrationStep.CLINIC_INFO)
        if record.clinic_data is not None:
            raise StepAlreadyCompleted("Clinic data already submitted")

        clinic = replace(clinic, name=clinic.name.strip(), email=self._normalize_email(clinic.email))
        if self.accounts.clinic_exists(clinic.name, clinic.email) or self.repository.clinic_claimed(
            clinic.name, clinic.email, record.id
        ):
            raise ClinicAlreadyExists("A clinic with this name or email already exists")

        return self._commit(
            record,
            clinic_data=clinic,
            status=RegistrationStatus.CLINIC_CREATED,
            current_step=RegistrationStep.CLINIC_INFO,
            completed_steps=with_completed_step(record.completed_steps, RegistrationStep.CLINIC_INFO),
        )

    def select_subscription(
        self,
        registration_id: UUID,
        tier_code: str,
        billing_cycle: BillingCycle,
        currency: str | None = None,
    ) -> RegistrationRecord:
        """Select a tier; the amount due is taken from the tier's price for the cycle."""
        record = self._load_open(registration_id)
        self._require_step(record, RegistrationStep.SUBSCRIPTION)
        if record.subscription_data is not None:
            raise StepAlreadyCompleted("Subscription already selected")

        tier = self.tiers.get_tier(tier_code)
        if tier is None or not tier.is_active:
            raise InvalidSubscriptionTier(f"Unknown or inactive subscription tier: {tier_code}")

        subscription = SubscriptionData(
            tier_code=tier.code,
            billing_cycle=billing_cycle,
            amount=tier.price_for(billing_cycle),
            currency=currency or self.default_currency,
        )
        return self._commit(
            record,
            subscription_data=subscription,
            status=RegistrationStatus.SUBSCRIPTION_SELECTED,
            current_step=RegistrationStep.SUBSCRIPTION,
            completed_steps=with_completed_step(record.completed_steps, RegistrationStep.SUBSCRIPTION),
        )

    def process_payment(
        self,
        registration_id: UUID,
        method: PaymentMethod,
        amount: Decimal,
        currency: str | None = None,
        provider_ref: str | None = None,
    ) -> RegistrationRecord:
        """
        Record a payment attempt for the selected subscription.

        Bank transfers stay PENDING until confirm_payment is called. Other
        methods complete immediately while simulate_instant_payments is on.

        Raises:
            MissingRegistrationData: No subscription selected
            PaymentCurrencyMismatch: Currency differs from the subscription currency
            PaymentAmountMismatch: Amount differs from the subscription amount
            PaymentAlreadyCompleted: A completed payment cannot be replaced
        """
        record = self._load_open(registration_id)
        self._require_step(record, RegistrationStep.PAYMENT)
        subscription = record.subscription_data
        if subscription is None:
            raise MissingRegistrationData("Subscription must be selected before payment")
        if record.payment_status not in _RESUBMITTABLE_PAYMENT:
            raise PaymentAlreadyCompleted("Payment already completed")
        if currency is not None and currency.strip().upper() != subscription.currency.upper():
            logger.warning(
                "Payment currency %s does not match %s for registration %s",
                currency,
                subscription.currency,
                record.id,
            )
            raise PaymentCurrencyMismatch(
                f"Payment currency must equal the subscription currency {subscription.currency}"
            )
        if Decimal(amount) != subscription.amount:
            logger.warning(
                "Payment amount %s does not match %s for registration %s",
                amount,
                subscription.amount,
                record.id,
            )
            raise PaymentAmountMismatch(
                f"Payment amount must equal the subscription amount {subscription.amount}"
            )

        payment = Payment(
            status=PaymentStatus.PENDING,
            method=method,
            amount=subscription.amount,
            currency=subscription.currency,
            provider_ref=provider_ref,
        )
        if method is PaymentMethod.BANK_TRANSFER or not self.simulate_instant_payments:
            return self._commit(record, payment=payment, status=RegistrationStatus.PAYMENT_PENDING)
        return self._commit(record, **self._payment_completed(record, payment))

    def confirm_payment(
        self,
        registration_id: UUID,
        succeeded: bool = True,
        provider_ref: str | None = None,
    ) -> RegistrationRecord:
        """
        Apply the external confirmation of a pending payment.

        A failed confirmation marks the payment FAILED and leaves the record
        status alone so the caller can resubmit process_payment.
        """
        record = self._load_open(registration_id)
        payment = record.payment
        if payment is None or payment.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise PaymentNotPending("No pending payment to confirm")
        if provider_ref:
            payment = replace(payment, provider_ref=provider_ref)

        if not succeeded:
            logger.warning("Payment failed for registration %s", record.id)
            return self._commit(record, payment=replace(payment, status=PaymentStatus.FAILED))
        return self._commit(record, **self._payment_completed(record, payment))

    def complete_registration(self, registration_id: UUID) -> RegistrationRecord:
        """
        Finalize the registration into permanent user, clinic and role.

        The finalizer writes the entities and the completed record in one
        transaction; if it raises, the stored record is untouched and the
        call may be retried once the cause is fixed.
        """
        record = self._load_open(registration_id)
        self._require_step(record, RegistrationStep.COMPLETE)
        if record.user_data is None or record.clinic_data is None or record.subscription_data is None:
            raise MissingRegistrationData("User, clinic and subscription data are required")
        if not is_payment_completed(record):
            raise StepNotAllowed("Payment must be completed")

        now = self.clock()
        completed = replace(
            record,
            status=RegistrationStatus.COMPLETED,
            current_step=RegistrationStep.COMPLETE,
            completed_steps=with_completed_step(record.completed_steps, RegistrationStep.COMPLETE),
            completed_at=now,
            updated_at=now,
            version=record.version + 1,
        )
        finalized = self.finalizer.finalize(completed, record.version)
        logger.info(
            "Registration %s completed: user %s clinic %s",
            finalized.id,
            finalized.created_user_id,
            finalized.created_clinic_id,
        )
        return finalized

    def get_status(self, registration_id: UUID) -> RegistrationRecord:
        """Load a record for display; completed and cancelled records are returned as-is."""
        return self._load(registration_id)

    def cancel(self, registration_id: UUID) -> RegistrationRecord:
        record = self._load(registration_id)
        if record.status is RegistrationStatus.COMPLETED:
            raise RegistrationClosed("Completed registrations cannot be cancelled")
        if record.is_terminal:
            raise RegistrationClosed(f"Registration is already {record.status.value}")

        payment = record.payment
        if payment is not None and payment.status is not PaymentStatus.COMPLETED:
            payment = replace(payment, status=PaymentStatus.CANCELLED)
        logger.info("Registration %s cancelled", record.id)
        return self._commit(
            record,
            status=RegistrationStatus.CANCELLED,
            verification_code=None,
            payment=payment,
        )

    def resend_verification_code(self, email_or_id: str) -> RegistrationRecord:
        """
        Issue a fresh code for an active, unverified registration.

        Accepts either the registration id or the email it was started with.
        A new code resets the failed-attempt counter.

        Raises:
            RegistrationExpired: The registration (found by id or email) expired
            ResendTooSoon: The previous code was sent less than resend_cooldown ago
        """
        record = self._find_for_resend(email_or_id)
        if record.email_verified:
            raise EmailAlreadyVerified("Email is already verified")

        now = self.clock()
        sent_at = record.verification_sent_at
        if sent_at is not None and now < sent_at + self.resend_cooldown:
            raise ResendTooSoon("A code was sent recently, please wait before requesting another")

        code = generate_verification_code(self.code_length)
        updated = self._commit(
            record,
            verification_code=code,
            verification_sent_at=now,
            verification_attempts=0,
        )
        self.email_sender.send_verification_code(updated.email, code)
        return updated

    def check_email_status(self, email: str) -> EmailStatus:
        normalized_email = self._normalize_email(email)
        if self.accounts.account_exists(normalized_email):
            return EmailStatus.EXISTS
        if self._active_for_email(normalized_email) is not None:
            return EmailStatus.IN_PROGRESS
        return EmailStatus.AVAILABLE

    def list_subscription_tiers(self) -> list[SubscriptionTier]:
        return self.tiers.list_active_tiers()

    def _load(self, registration_id: UUID) -> RegistrationRecord:
        record = self.repository.get(registration_id)
        if record is None:
            raise RegistrationNotFound(str(registration_id))
        self._check_expiry(record)
        return record

    def _load_open(self, registration_id: UUID) -> RegistrationRecord:
        record = self._load(registration_id)
        if record.is_terminal:
            raise RegistrationClosed(f"Registration is {record.status.value}")
        return record

    def _check_expiry(self, record: RegistrationRecord) -> None:
        if record.status is RegistrationStatus.EXPIRED:
            raise RegistrationExpired(_EXPIRED_MESSAGE)
        if record.is_expired(self.clock()):
            self._expire(record)
            raise RegistrationExpired(_EXPIRED_MESSAGE)

    def _code_expired(self, record: RegistrationRecord) -> bool:
        sent_at = record.verification_sent_at
        return sent_at is not None and self.clock() > sent_at + self.code_ttl

    def _expire(self, record: RegistrationRecord) -> None:
        # A failed save means another request already changed (or expired) it.
        expired = replace(
            record,
            status=RegistrationStatus.EXPIRED,
            verification_code=None,
            updated_at=self.clock(),
            version=record.version + 1,
        )
        if self.repository.save(expired, record.version):
            logger.info("Registration %s expired", record.id)

    def _active_for_email(self, email: str) -> RegistrationRecord | None:
        record = self.repository.find_active_by_email(email)
        if record is not None and record.is_expired(self.clock()):
            self._expire(record)
            return None
        return record

    def _find_for_resend(self, email_or_id: str) -> RegistrationRecord:
        try:
            registration_id = UUID(email_or_id)
        except ValueError:
            email = self._normalize_email(email_or_id)
            record = self._active_for_email(email)
            if record is not None:
                return record
            latest = self.repository.find_latest_by_email(email)
            if latest is not None and (
                latest.status is RegistrationStatus.EXPIRED or latest.is_expired(self.clock())
            ):
                raise RegistrationExpired(_EXPIRED_MESSAGE) from None
            raise RegistrationNotFound(email_or_id) from None
        return self._load_open(registration_id)

    def _require_step(self, record: RegistrationRecord, step: RegistrationStep) -> None:
        if not can_proceed_to_step(record, step):
            logger.warning(
                "Registration %s cannot proceed to %s (completed: %s)",
                record.id,
                step.value,
                ", ".join(s.value for s in record.completed_steps),
            )
            raise StepNotAllowed(f"Cannot proceed to step {step.value}")

    def _commit(self, record: RegistrationRecord, **changes: Any) -> RegistrationRecord:
        updated = replace(
            record,
            **changes,
            updated_at=self.clock(),
            version=record.version + 1,
        )
        if not self.repository.save(updated, record.version):
            raise ConcurrentModification(str(record.id))
        if updated.status is not record.status:
            logger.info(
                "Registration %s: %s -> %s", record.id, record.status.value, updated.status.value
            )
        return updated

    def _payment_completed(self, record: RegistrationRecord, payment: Payment) -> dict[str, Any]:
        return {
            "payment": replace(payment, status=PaymentStatus.COMPLETED, paid_at=self.clock()),
            "status": RegistrationStatus.PAYMENT_COMPLETED,
            "current_step": RegistrationStep.PAYMENT,
            "completed_steps": with_completed_step(record.completed_steps, RegistrationStep.PAYMENT),
        }

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    def _hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.bcrypt_cost)).decode()
