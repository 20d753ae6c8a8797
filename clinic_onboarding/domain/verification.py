"""
Verification codes - generation and comparison.

Codes are single-use: the engine clears the stored code as soon as one
comparison succeeds.
"""

import secrets

DEFAULT_CODE_LENGTH = 6


def generate_verification_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """
    Generate a cryptographically secure numeric verification code.

    Uses the secrets module for cryptographic randomness.
    Returns a string to preserve leading zeros.
    """
    if length < 1:
        raise ValueError("verification code length must be positive")
    return "".join(secrets.choice("0123456789") for _ in range(length))


def codes_match(stored: str | None, supplied: str) -> bool:
    """Constant-time comparison; a cleared (None) code never matches."""
    if not stored:
        return False
    return secrets.compare_digest(stored.encode(), supplied.encode())
