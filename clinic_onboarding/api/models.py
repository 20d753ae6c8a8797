"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from clinic_onboarding.domain.model import (
    BillingCycle,
    ClinicData,
    EmailStatus,
    PaymentMethod,
    PaymentStatus,
    RegistrationRecord,
    RegistrationStatus,
    RegistrationStep,
    SubscriptionData,
    SubscriptionTier,
    get_current_step,
)


class StartRegistrationRequest(BaseModel):
    """Request model for starting a registration."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=6, description="Account password (min 6 characters)")
    source: str | None = Field(None, max_length=100, description="Source of registration")
    referrer: str | None = Field(None, max_length=255)


class VerifyEmailRequest(BaseModel):
    """Request model for email verification."""

    id: UUID
    code: str = Field(
        ...,
        min_length=4,
        max_length=10,
        pattern=r"^\d+$",
        description="Numeric verification code sent by email",
    )


class ClinicDataRequest(BaseModel):
    """Request model for the clinic profile step."""

    id: UUID
    name: str = Field(..., min_length=2, max_length=255)
    address: str = Field(..., min_length=10)
    phone: str = Field(..., pattern=r"^\+?[0-9][0-9\s-]{5,19}$")
    email: EmailStr
    website: str | None = Field(None, max_length=255)
    description: str | None = Field(None, max_length=1000)
    working_hours: str | None = Field(None, max_length=255)
    province: str | None = Field(None, max_length=100)


class SubscriptionRequest(BaseModel):
    """Request model for subscription selection."""

    id: UUID
    tier_code: str = Field(..., min_length=1, max_length=50)
    billing_cycle: BillingCycle
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$")


class PaymentRequest(BaseModel):
    """Request model for submitting a payment."""

    id: UUID
    method: PaymentMethod
    amount: Decimal = Field(..., ge=0)
    currency: str | None = Field(None, pattern=r"^[A-Z]{3}$")
    provider_ref: str | None = Field(None, max_length=255, description="Gateway transaction id")


class ConfirmPaymentRequest(BaseModel):
    """Request model for the external confirmation of a pending payment."""

    id: UUID
    succeeded: bool = True
    provider_ref: str | None = Field(None, max_length=255)


class CompleteRequest(BaseModel):
    id: UUID


class CheckEmailRequest(BaseModel):
    email: EmailStr


class CheckEmailResponse(BaseModel):
    email: str
    status: EmailStatus


class ResendCodeResponse(BaseModel):
    message: str


class SubscriptionTierResponse(BaseModel):
    code: str
    name: str
    description: str | None = None
    monthly_price: Decimal
    yearly_price: Decimal

    @classmethod
    def from_tier(cls, tier: SubscriptionTier) -> "SubscriptionTierResponse":
        return cls(
            code=tier.code,
            name=tier.name,
            description=tier.description,
            monthly_price=tier.monthly_price,
            yearly_price=tier.yearly_price,
        )


class ClinicSummary(BaseModel):
    name: str
    address: str
    phone: str
    email: str
    website: str | None = None
    description: str | None = None
    working_hours: str | None = None
    province: str | None = None

    @classmethod
    def from_clinic(cls, clinic: ClinicData) -> "ClinicSummary":
        return cls(**asdict(clinic))


class SubscriptionSummary(BaseModel):
    tier_code: str
    billing_cycle: BillingCycle
    amount: Decimal
    currency: str

    @classmethod
    def from_subscription(cls, subscription: SubscriptionData) -> "SubscriptionSummary":
        return cls(
            tier_code=subscription.tier_code,
            billing_cycle=subscription.billing_cycle,
            amount=subscription.amount,
            currency=subscription.currency,
        )


class RegistrationSnapshot(BaseModel):
    """
    Client-facing view of a registration record.

    current_step is the last completed step; resume_step is derived from
    the data actually present and tells the client where to continue.
    clinic and subscription carry the submitted step payloads. The
    verification code and password hash are never exposed.
    """

    id: UUID
    email: str
    status: RegistrationStatus
    current_step: RegistrationStep
    resume_step: RegistrationStep
    completed_steps: list[RegistrationStep]
    email_verified: bool
    email_verified_at: datetime | None = None
    clinic: ClinicSummary | None = None
    subscription: SubscriptionSummary | None = None
    amount: Decimal | None = None
    currency: str | None = None
    payment_status: PaymentStatus
    payment_method: PaymentMethod | None = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None
    created_user_id: UUID | None = None
    created_clinic_id: UUID | None = None

    @classmethod
    def from_record(cls, record: RegistrationRecord) -> "RegistrationSnapshot":
        subscription = record.subscription_data
        return cls(
            id=record.id,
            email=record.email,
            status=record.status,
            current_step=record.current_step,
            resume_step=get_current_step(record),
            completed_steps=list(record.completed_steps),
            email_verified=record.email_verified,
            email_verified_at=record.email_verified_at,
            clinic=ClinicSummary.from_clinic(record.clinic_data) if record.clinic_data else None,
            subscription=SubscriptionSummary.from_subscription(subscription) if subscription else None,
            amount=subscription.amount if subscription else None,
            currency=subscription.currency if subscription else None,
            payment_status=record.payment_status,
            payment_method=record.payment.method if record.payment else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
            expires_at=record.expires_at,
            completed_at=record.completed_at,
            created_user_id=record.created_user_id,
            created_clinic_id=record.created_clinic_id,
        )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    reason: str
