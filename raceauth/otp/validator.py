"""
OTP Validation Module

Checks a submitted code against the stored record for an email.

Check order: presence -> integrity -> already used -> expiry -> attempt
budget -> constant-time comparison. The whole sequence runs under the
email's lock, so a code can be accepted at most once per process.
"""

import hmac
import logging
import time
from typing import Callable, Optional, Tuple

from ..auth.accounts import normalize_email
from ..config import AuthSettings
from ..errors import OTPDecryptError
from .records import OTPFailure, OTPRecord, ValidationResult
from .repository import KeyedLocks, OTPRepository
from .sealing import OTPCipher


logger = logging.getLogger(__name__)

# Countdown at or below which the UI offers "resend"
RESEND_THRESHOLD_SECONDS = 300

MSG_NOT_FOUND = 'No OTP found. Please request a new code.'
MSG_CORRUPT = 'Invalid OTP data. Please request a new code.'
MSG_ALREADY_USED = 'This OTP has already been used. Please request a new code.'
MSG_EXPIRED = 'OTP has expired. Please request a new code.'
MSG_EXHAUSTED = 'Too many invalid attempts. Please request a new code.'
MSG_SUCCESS = 'OTP validated successfully.'


def mismatch_message(attempts_remaining: int) -> str:
    plural = '' if attempts_remaining == 1 else 's'
    return f'Invalid OTP. {attempts_remaining} attempt{plural} remaining.'


def format_time_remaining(seconds: int) -> str:
    """
    Format a countdown as M:SS.

    >>> format_time_remaining(125)
    '2:05'
    >>> format_time_remaining(-3)
    '0:00'
    """
    if seconds <= 0:
        return '0:00'
    minutes, secs = divmod(int(seconds), 60)
    return f'{minutes}:{secs:02d}'


def resend_allowed(remaining_seconds: int, threshold: int = RESEND_THRESHOLD_SECONDS) -> bool:
    """UI hint only; issuance is governed by the issuer's rate limits."""
    return remaining_seconds <= threshold


class OTPValidator:
    """
    Validates and retires OTPs.

    Example:
        >>> validator = OTPValidator(repo, cipher, locks=issuer_locks)
        >>> result = validator.validate("driver@example.com", "042137")
        >>> result.is_valid, result.message
        (True, 'OTP validated successfully.')
    """

    def __init__(self, repository: OTPRepository, cipher: OTPCipher,
                 settings: Optional[AuthSettings] = None,
                 clock: Callable[[], float] = time.time,
                 event_logger=None,
                 locks: Optional[KeyedLocks] = None):
        self._repository = repository
        self._cipher = cipher
        self._settings = settings or AuthSettings()
        self._clock = clock
        self._events = event_logger
        self._locks = locks or KeyedLocks()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _load(self, email: str) -> Tuple[Optional[OTPRecord], bool]:
        """Return (record, corrupt) for email."""
        sealed = self._repository.get(email)
        if sealed is None:
            return None, False
        try:
            return self._cipher.open(email, sealed), False
        except OTPDecryptError as e:
            logger.warning("Discarding unreadable OTP record: %s", e)
            return None, True

    def _log_result(self, email: str, result: ValidationResult) -> ValidationResult:
        if self._events is not None:
            self._events.log_otp_validation(
                email,
                result.is_valid,
                failure=result.failure.value if result.failure else None,
                attempts_remaining=result.attempts_remaining,
            )
        return result

    def validate(self, email: str, code: str) -> ValidationResult:
        """
        Validate a submitted code.

        Args:
            email: Address the code was sent to
            code: User input (whitespace and case are ignored)

        Returns:
            ValidationResult; failures carry an OTPFailure kind
        """
        email = normalize_email(email)
        submitted = (code or '').strip().upper()
        max_attempts = self._settings.otp_max_attempts

        with self._locks.lock_for(email):
            record, corrupt = self._load(email)
            if corrupt:
                self._repository.delete(email)
                return self._log_result(email, ValidationResult(
                    False, MSG_CORRUPT, OTPFailure.NOT_FOUND))
            if record is None:
                return self._log_result(email, ValidationResult(
                    False, MSG_NOT_FOUND, OTPFailure.NOT_FOUND))

            if record.used:
                return self._log_result(email, ValidationResult(
                    False, MSG_ALREADY_USED, OTPFailure.ALREADY_USED))

            now_ms = self._now_ms()
            if record.is_expired(now_ms):
                self._repository.delete(email)
                return self._log_result(email, ValidationResult(
                    False, MSG_EXPIRED, OTPFailure.EXPIRED))

            if record.attempts >= max_attempts:
                self._repository.delete(email)
                return self._log_result(email, ValidationResult(
                    False, MSG_EXHAUSTED, OTPFailure.EXHAUSTED, attempts_remaining=0))

            if not hmac.compare_digest(record.code.encode('utf-8'), submitted.encode('utf-8')):
                record.attempts += 1
                self._repository.put(email, self._cipher.seal(record))
                remaining = max(0, max_attempts - record.attempts)
                return self._log_result(email, ValidationResult(
                    False, mismatch_message(remaining), OTPFailure.MISMATCH,
                    attempts_remaining=remaining))

            record.used = True
            self._repository.put(email, self._cipher.seal(record))
            return self._log_result(email, ValidationResult(
                True, MSG_SUCCESS, time_remaining=record.remaining_seconds(now_ms)))

    def invalidate_all(self, email: str) -> None:
        """Remove any OTP for email (after a reset completes, or on logout)."""
        email = normalize_email(email)
        with self._locks.lock_for(email):
            removed = self._repository.delete(email)
        if removed and self._events is not None:
            self._events.log_otp_invalidated(email)

    def remaining_time(self, email: str) -> int:
        """Seconds until the current OTP expires; 0 if none or unreadable."""
        email = normalize_email(email)
        record, _ = self._load(email)
        if record is None:
            return 0
        return record.remaining_seconds(self._now_ms())

    def cleanup_expired(self) -> int:
        """
        Delete expired and unreadable records.

        Returns:
            Number of records removed
        """
        removed = 0
        for email in self._repository.emails():
            with self._locks.lock_for(email):
                record, corrupt = self._load(email)
                if corrupt or (record is not None and record.is_expired(self._now_ms())):
                    if self._repository.delete(email):
                        removed += 1
        if removed:
            logger.info("Removed %d stale OTP records", removed)
        return removed
