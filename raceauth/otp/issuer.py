"""
OTP Issuance Module

Generates one-time passcodes and stores them sealed, behind two
anti-abuse gates per email:

- hourly cap: at most OTP_HOURLY_LIMIT codes in any rolling window
- spacing: no new code within OTP_MIN_SPACING_SECONDS of the last one

Issuing a new code replaces any outstanding one for the same email.
"""

import logging
import math
import secrets
import string
import time
from typing import Callable, Optional

from ..auth.accounts import normalize_email
from ..config import AuthSettings
from ..errors import RateLimitedError
from .records import OTPRecord, RateLimitStatus, RequestMetadata
from .repository import IssuanceHistory, KeyedLocks, OTPRepository
from .sealing import OTPCipher


logger = logging.getLogger(__name__)

NUMERIC_ALPHABET = string.digits
ALPHANUMERIC_ALPHABET = string.digits + string.ascii_uppercase

ALPHABETS = {
    'numeric': NUMERIC_ALPHABET,
    'alphanumeric': ALPHANUMERIC_ALPHABET,
}


def generate_otp_code(length: int = 6, alphabet: str = 'numeric') -> str:
    """
    Generate a one-time passcode with the system CSPRNG.

    Args:
        length: Number of characters
        alphabet: 'numeric' (0-9) or 'alphanumeric' (0-9, A-Z)

    Returns:
        The code; every position is uniform over the alphabet
    """
    if length < 1:
        raise ValueError("length must be positive")
    try:
        chars = ALPHABETS[alphabet]
    except KeyError:
        raise ValueError(f"Unknown OTP alphabet: {alphabet!r}")
    return ''.join(secrets.choice(chars) for _ in range(length))


class OTPIssuer:
    """
    Issues OTPs for an email address.

    Example:
        >>> issuer = OTPIssuer(repo, history, cipher)
        >>> record = issuer.issue("driver@example.com")
        >>> sender.send_otp(record.email, record.code, record.expiry_minutes)
    """

    def __init__(self, repository: OTPRepository, history: IssuanceHistory,
                 cipher: OTPCipher,
                 settings: Optional[AuthSettings] = None,
                 clock: Callable[[], float] = time.time,
                 event_logger=None,
                 locks: Optional[KeyedLocks] = None):
        """
        Args:
            repository: Sealed OTP storage
            history: Issuance timestamps for rate limiting
            cipher: Seals records before storage
            settings: Tunables (defaults if None)
            clock: Epoch-seconds time source
            event_logger: Optional EventLogger
            locks: Per-email locks, shared with the validator
        """
        self._repository = repository
        self._history = history
        self._cipher = cipher
        self._settings = settings or AuthSettings()
        self._clock = clock
        self._events = event_logger
        self._locks = locks or KeyedLocks()

    @property
    def default_expiry_minutes(self) -> int:
        return self._settings.otp_expiry_minutes

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _check_gates(self, email: str, now_ms: int) -> RateLimitStatus:
        s = self._settings
        window_ms = s.otp_rate_window_seconds * 1000
        recent = self._history.since(email, now_ms - window_ms)

        if len(recent) >= s.otp_hourly_limit:
            # Allowed again once the oldest counted issuance leaves the window
            oldest = recent[-s.otp_hourly_limit]
            wait = math.ceil((oldest + window_ms - now_ms) / 1000)
            return RateLimitStatus(False, max(0, wait), 'hourly')

        spacing_ms = s.otp_min_spacing_seconds * 1000
        if recent and recent[-1] > now_ms - spacing_ms:
            wait = math.ceil((recent[-1] + spacing_ms - now_ms) / 1000)
            return RateLimitStatus(False, max(0, wait), 'spacing')

        return RateLimitStatus(True)

    def can_request(self, email: str) -> RateLimitStatus:
        """
        Preview whether issue() would currently succeed.

        Returns:
            RateLimitStatus(allowed, wait_seconds, reason)
        """
        return self._check_gates(normalize_email(email), self._now_ms())

    def issue(self, email: str, expiry_minutes: Optional[int] = None,
              metadata: Optional[RequestMetadata] = None) -> OTPRecord:
        """
        Issue and store a new OTP.

        Args:
            email: Recipient address
            expiry_minutes: Lifetime (settings default if None)
            metadata: Request origin, informational

        Returns:
            The stored record; the caller passes record.code to the sender

        Raises:
            RateLimitedError: Hourly cap reached or last code too recent
        """
        email = normalize_email(email)
        if not email:
            raise ValueError("Email is required")
        if expiry_minutes is None:
            expiry_minutes = self._settings.otp_expiry_minutes
        if expiry_minutes < 1:
            raise ValueError("expiry_minutes must be positive")

        with self._locks.lock_for(email):
            now_ms = self._now_ms()
            status = self._check_gates(email, now_ms)
            if not status.allowed:
                logger.info("OTP request refused (%s), retry in %ss", status.reason, status.wait_seconds)
                if self._events is not None:
                    self._events.log_otp_rate_limited(email, status.reason, status.wait_seconds)
                raise RateLimitedError(status.wait_seconds, status.reason)

            record = OTPRecord(
                code=generate_otp_code(self._settings.otp_code_length),
                email=email,
                issued_at_ms=now_ms,
                expiry_minutes=expiry_minutes,
                metadata=metadata or RequestMetadata(),
            )
            self._repository.put(email, self._cipher.seal(record))
            self._history.record(email, now_ms)

        if self._events is not None:
            self._events.log_otp_issued(
                email, expiry_minutes,
                ip_address=record.metadata.ip_address,
                user_agent=record.metadata.user_agent,
            )
        return record
