"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from datetime import timedelta

from fastapi import Request
from psycopg_pool import ConnectionPool

from clinic_onboarding.adapters.repository import (
    PostgresAccountDirectory,
    PostgresRegistrationFinalizer,
    PostgresRegistrationRepository,
    PostgresSubscriptionTierCatalog,
)
from clinic_onboarding.adapters.smtp.console import ConsoleEmailSender
from clinic_onboarding.config.settings import get_settings
from clinic_onboarding.domain.registration import RegistrationService

# Module-level singleton - ConsoleEmailSender is stateless
_email_sender = ConsoleEmailSender()


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_email_sender() -> ConsoleEmailSender:
    """Get console email sender (singleton)."""
    return _email_sender


def get_registration_service(request: Request) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires the PostgreSQL adapters, the email sender and the workflow
    settings into the domain service. A new service per request is cheap:
    it holds no state beyond its collaborators.
    """
    pool = get_pool(request)
    settings = get_settings()
    return RegistrationService(
        repository=PostgresRegistrationRepository(pool),
        accounts=PostgresAccountDirectory(pool),
        tiers=PostgresSubscriptionTierCatalog(pool),
        finalizer=PostgresRegistrationFinalizer(pool),
        email_sender=get_email_sender(),
        ttl=timedelta(days=settings.registration_ttl_days),
        code_length=settings.verification_code_length,
        code_ttl=timedelta(minutes=settings.verification_code_ttl_minutes),
        max_verification_attempts=settings.max_verification_attempts,
        resend_cooldown=timedelta(minutes=settings.resend_cooldown_minutes),
        bcrypt_cost=settings.bcrypt_cost,
        simulate_instant_payments=settings.simulate_instant_payments,
        default_currency=settings.default_currency,
    )
