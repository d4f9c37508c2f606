"""
Authentication errors.

Every failure the core surfaces to a caller derives from AuthError so
request handlers can catch one type and map it to a response. Breach
service outages are a result value (BreachUnavailable), not an exception.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all raceauth errors."""


class ConfigurationError(AuthError):
    """Missing or malformed configuration (raised at startup)."""


class WeakPasswordError(AuthError, ValueError):
    """Password does not satisfy the strength policy."""

    def __init__(self, message: str, score: int = 0):
        super().__init__(message)
        self.message = message
        self.score = score


class BreachedPasswordError(AuthError):
    """Password appears in the breach corpus."""

    def __init__(self, count: int):
        super().__init__(
            f"This password has been found in {count:,} data breaches. "
            "Please choose a different password."
        )
        self.count = count


class RateLimitedError(AuthError):
    """
    OTP issuance refused by the anti-abuse gates.

    Attributes:
        wait_seconds: Seconds until a new request can succeed
        reason: 'hourly' (volume cap) or 'spacing' (burst gate)
    """

    def __init__(self, wait_seconds: int, reason: str):
        if reason == 'hourly':
            message = 'Too many OTP requests. Please wait before requesting another code.'
        else:
            message = 'Please wait before requesting another code.'
        super().__init__(f"{message} Try again in {wait_seconds} seconds.")
        self.wait_seconds = wait_seconds
        self.reason = reason


class DeliveryError(AuthError):
    """The email collaborator failed to deliver an OTP. Retryable."""


class OTPDecryptError(AuthError):
    """A sealed OTP payload could not be opened."""


class OTPValidationError(AuthError):
    """An OTP challenge failed; carries the validator's result."""

    def __init__(self, result):
        super().__init__(result.message)
        self.result = result

    @property
    def failure(self):
        return self.result.failure


class AccountNotFoundError(AuthError):
    """No credential record for the given email."""


class AccountExistsError(AuthError):
    """A credential record already exists for the given email."""


class InvalidCredentialsError(AuthError):
    """Supplied password does not match the stored hash."""


class InvalidResetTokenError(AuthError):
    """Reset grant token is unknown, expired or already consumed."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or 'Reset session is invalid or has expired. Please start again.')
