"""
Domain exceptions - Semantic error types for clinic registration.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each exception carries a stable ``reason`` string so that clients can
react to a specific failure (e.g. offer "start over" on expiry).

Categories:
- ConflictError: duplicate account, clinic or concurrent write
- NotFoundError: unknown registration id or email
- BadRequestError: step-gate violation, code/amount mismatch, terminal record
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    reason = "registration_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)
        self.message = message or self.reason


class ConflictError(RegistrationError):
    """The requested change collides with existing state."""

    reason = "conflict"


class NotFoundError(RegistrationError):
    """The referenced registration does not exist."""

    reason = "not_found"


class BadRequestError(RegistrationError):
    """The operation is not valid for the registration's current state."""

    reason = "bad_request"


class EmailAlreadyRegistered(ConflictError):
    """A permanent account already exists for this email."""

    reason = "email_already_registered"


class ClinicAlreadyExists(ConflictError):
    """A clinic with the same name or email exists or is being registered."""

    reason = "clinic_already_exists"


class ConcurrentModification(ConflictError):
    """Another request updated the registration first."""

    reason = "concurrent_modification"


class RegistrationNotFound(NotFoundError):
    reason = "registration_not_found"


class RegistrationExpired(BadRequestError):
    """The registration passed its expiry; it cannot be read or advanced."""

    reason = "registration_expired"


class RegistrationClosed(BadRequestError):
    """The registration is completed or cancelled."""

    reason = "registration_closed"


class StepNotAllowed(BadRequestError):
    """The step gate rejected the requested transition."""

    reason = "step_not_allowed"


class StepAlreadyCompleted(BadRequestError):
    """The step's payload was already submitted and is write-once."""

    reason = "step_already_completed"


class InvalidVerificationCode(BadRequestError):
    reason = "invalid_verification_code"


class VerificationCodeExpired(BadRequestError):
    """The emailed code outlived its own lifetime; a new one must be requested."""

    reason = "verification_code_expired"


class VerificationLocked(BadRequestError):
    """Too many wrong codes were entered for the current code."""

    reason = "verification_locked"


class ResendTooSoon(BadRequestError):
    reason = "resend_too_soon"


class EmailAlreadyVerified(BadRequestError):
    reason = "email_already_verified"


class InvalidSubscriptionTier(BadRequestError):
    reason = "invalid_subscription_tier"


class SubscriptionTierUnavailable(BadRequestError):
    """The selected tier was removed or deactivated before finalization."""

    reason = "subscription_tier_unavailable"


class MissingRegistrationData(BadRequestError):
    reason = "missing_registration_data"


class PaymentAmountMismatch(BadRequestError):
    reason = "payment_amount_mismatch"


class PaymentCurrencyMismatch(BadRequestError):
    reason = "payment_currency_mismatch"


class PaymentAlreadyCompleted(BadRequestError):
    reason = "payment_already_completed"


class PaymentNotPending(BadRequestError):
    reason = "payment_not_pending"
