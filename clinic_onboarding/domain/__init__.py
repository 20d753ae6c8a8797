"""
Domain layer - Pure business logic with zero framework imports.

This package contains the clinic onboarding state machine: the record
and step model, the step gates and the workflow engine. It defines its
own port interfaces for infrastructure abstraction, keeping the domain
decoupled from FastAPI and PostgreSQL.
"""

from .exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    RegistrationError,
    RegistrationExpired,
)
from .model import (
    RegistrationRecord,
    RegistrationStatus,
    RegistrationStep,
    can_proceed_to_step,
    get_current_step,
)
from .ports import (
    AccountDirectory,
    EmailSender,
    RegistrationFinalizer,
    RegistrationRepository,
    SubscriptionTierCatalog,
)
from .registration import RegistrationService

__all__ = [
    "AccountDirectory",
    "BadRequestError",
    "ConflictError",
    "EmailSender",
    "NotFoundError",
    "RegistrationError",
    "RegistrationExpired",
    "RegistrationFinalizer",
    "RegistrationRecord",
    "RegistrationRepository",
    "RegistrationService",
    "RegistrationStatus",
    "RegistrationStep",
    "SubscriptionTierCatalog",
    "can_proceed_to_step",
    "get_current_step",
]
