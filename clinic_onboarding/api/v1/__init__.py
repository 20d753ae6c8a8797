"""
API v1 package.

Contains versioned API routes for the clinic registration workflow.
"""

from clinic_onboarding.api.v1.routes import router

__all__ = ["router"]
