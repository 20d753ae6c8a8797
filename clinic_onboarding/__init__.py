"""Clinic onboarding - multi-step clinic registration service."""

__version__ = "0.1.0"
