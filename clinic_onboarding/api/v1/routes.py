"""
API v1 routes.

Defines REST endpoints for the clinic registration workflow. Each call
is stateless: the client keeps the registration id returned by /start
and sends it with every following step.

Domain errors are translated to HTTP responses by the handlers in
clinic_onboarding.api.errors.

Handlers are plain functions: the service blocks on psycopg, so FastAPI
runs them in its threadpool.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from clinic_onboarding.api.dependencies import get_registration_service
from clinic_onboarding.api.models import (
    CheckEmailRequest,
    CheckEmailResponse,
    ClinicDataRequest,
    CompleteRequest,
    ConfirmPaymentRequest,
    ErrorResponse,
    PaymentRequest,
    RegistrationSnapshot,
    ResendCodeResponse,
    StartRegistrationRequest,
    SubscriptionRequest,
    SubscriptionTierResponse,
    VerifyEmailRequest,
)
from clinic_onboarding.domain.model import ClinicData
from clinic_onboarding.domain.registration import RegistrationService

router = APIRouter(prefix="/registration", tags=["v1"])

_bad_request = {400: {"model": ErrorResponse, "description": "Step not allowed or invalid input"}}
_not_found = {404: {"model": ErrorResponse, "description": "Registration not found"}}
_conflict = {409: {"model": ErrorResponse, "description": "Conflicting registration state"}}


@router.post(
    "/start",
    response_model=RegistrationSnapshot,
    status_code=status.HTTP_201_CREATED,
    responses={**_conflict, 422: {"description": "Validation error"}},
    summary="Start a clinic registration",
    description="Create a registration for the email, or return the active one. "
    "A verification code is sent to the email for new registrations.",
)
def start_registration(
    request_data: StartRegistrationRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.start(
        request_data.email,
        request_data.name,
        request_data.password,
        source=request_data.source,
        referrer=request_data.referrer,
    )
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/verify",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found},
    summary="Verify email with the emailed code",
)
def verify_email(
    request_data: VerifyEmailRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.verify_email(request_data.id, request_data.code)
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/clinic-data",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found, **_conflict},
    summary="Submit the clinic profile",
)
def submit_clinic_data(
    request_data: ClinicDataRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    clinic = ClinicData(**request_data.model_dump(exclude={"id"}))
    record = service.submit_clinic_data(request_data.id, clinic)
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/subscription",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found},
    summary="Select a subscription tier and billing cycle",
)
def select_subscription(
    request_data: SubscriptionRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.select_subscription(
        request_data.id,
        request_data.tier_code,
        request_data.billing_cycle,
        currency=request_data.currency,
    )
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/payment",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found, **_conflict},
    summary="Submit payment for the selected subscription",
    description="Bank transfers stay pending until confirmed via /payment/confirm.",
)
def process_payment(
    request_data: PaymentRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.process_payment(
        request_data.id,
        request_data.method,
        request_data.amount,
        currency=request_data.currency,
        provider_ref=request_data.provider_ref,
    )
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/payment/confirm",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found, **_conflict},
    summary="Confirm or fail a pending payment",
)
def confirm_payment(
    request_data: ConfirmPaymentRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.confirm_payment(
        request_data.id,
        succeeded=request_data.succeeded,
        provider_ref=request_data.provider_ref,
    )
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/complete",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found, **_conflict},
    summary="Create the user, clinic and admin role",
)
def complete_registration(
    request_data: CompleteRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.complete_registration(request_data.id)
    return RegistrationSnapshot.from_record(record)


@router.get(
    "/status/{registration_id}",
    response_model=RegistrationSnapshot,
    responses={**_bad_request, **_not_found},
    summary="Get registration status and the step to resume at",
)
def get_status(
    registration_id: UUID,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationSnapshot:
    record = service.get_status(registration_id)
    return RegistrationSnapshot.from_record(record)


@router.post(
    "/cancel/{registration_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**_bad_request, **_not_found},
    summary="Cancel a registration",
)
def cancel_registration(
    registration_id: UUID,
    service: RegistrationService = Depends(get_registration_service),
) -> Response:
    service.cancel(registration_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/resend/{email_or_id}",
    response_model=ResendCodeResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={**_bad_request, **_not_found},
    summary="Resend the verification code",
    description="Accepts either the registration id or the registration email.",
)
def resend_verification_code(
    email_or_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> ResendCodeResponse:
    service.resend_verification_code(email_or_id)
    return ResendCodeResponse(message="Verification code sent")


@router.post(
    "/check-email",
    response_model=CheckEmailResponse,
    summary="Check whether an email can start a registration",
)
def check_email(
    request_data: CheckEmailRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> CheckEmailResponse:
    email_status = service.check_email_status(request_data.email)
    return CheckEmailResponse(email=request_data.email.lower(), status=email_status)


@router.get(
    "/subscription-tiers",
    response_model=list[SubscriptionTierResponse],
    summary="List active subscription tiers",
)
def list_subscription_tiers(
    service: RegistrationService = Depends(get_registration_service),
) -> list[SubscriptionTierResponse]:
    return [SubscriptionTierResponse.from_tier(tier) for tier in service.list_subscription_tiers()]
