"""
Forgot-Password Flow

Ties the OTP challenge to the credential reset:

    request_code  -> issue OTP, email it
    verify_code   -> validate OTP, hand out a short-lived reset token
    complete_reset -> check token, accept new password, retire OTPs

Reset tokens are random and only their HMAC-SHA256 digest is kept
server-side; each is single use and bound to one email.
"""

import hashlib
import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..auth.accounts import AccountStore, CredentialManager, normalize_email
from ..config import AuthSettings
from ..errors import (
    DeliveryError,
    InvalidResetTokenError,
    OTPValidationError,
    WeakPasswordError,
)
from ..otp.delivery import EmailSender, SimulatedEmailSender
from ..otp.issuer import OTPIssuer
from ..otp.records import RequestMetadata
from ..otp.repository import InMemoryIssuanceHistory, InMemoryOTPRepository, KeyedLocks
from ..otp.sealing import OTPCipher, key_provider_from_settings
from ..otp.validator import OTPValidator
from .event_logger import EventLogger


logger = logging.getLogger(__name__)

RESET_TOKEN_BYTES = 32
RESET_GRANT_TTL_SECONDS = 15 * 60

REQUEST_ACCEPTED_MESSAGE = "If an account exists for this email, a reset code has been sent."


@dataclass(frozen=True)
class ResetRequest:
    """Response to a code request; identical whether or not the account exists."""
    email: str
    message: str
    expiry_minutes: int


@dataclass(frozen=True)
class ResetGrant:
    """Proof of a passed OTP challenge, redeemable once for a new password."""
    email: str
    token: str
    expires_at: float


class PasswordResetFlow:
    """
    Forgot-password orchestration.

    Example:
        >>> flow = create_password_reset_flow(settings, account_store)
        >>> flow.request_code("driver@example.com")
        >>> grant = flow.verify_code("driver@example.com", "042137")
        >>> flow.complete_reset("driver@example.com", grant.token, "N3w-Secure-Pass!")
    """

    def __init__(self, issuer: OTPIssuer, validator: OTPValidator,
                 sender: EmailSender, credentials: CredentialManager,
                 event_logger: Optional[EventLogger] = None,
                 clock: Callable[[], float] = time.time,
                 grant_ttl_seconds: int = RESET_GRANT_TTL_SECONDS,
                 secret_key: Optional[bytes] = None):
        """
        Args:
            issuer: Issues OTPs
            validator: Validates and invalidates OTPs
            sender: Email delivery collaborator
            credentials: Applies the new password
            event_logger: Optional audit trail
            clock: Epoch-seconds time source
            grant_ttl_seconds: Reset token lifetime
            secret_key: HMAC key for token digests (random if not provided)
        """
        self._issuer = issuer
        self._validator = validator
        self._sender = sender
        self._credentials = credentials
        self._events = event_logger
        self._clock = clock
        self._grant_ttl = grant_ttl_seconds
        self._secret_key = secret_key or secrets.token_bytes(32)
        self._grants: Dict[str, Tuple[str, float]] = {}  # email -> (token digest, expires_at)
        self._lock = threading.Lock()

    def _digest(self, token: str) -> str:
        return hmac.new(self._secret_key, token.encode(), hashlib.sha256).hexdigest()

    def request_code(self, email: str,
                     metadata: Optional[RequestMetadata] = None) -> ResetRequest:
        """
        Send a reset code to email.

        Unknown addresses get the same response and no code.

        Raises:
            RateLimitedError: Issuance gates refused the request
            DeliveryError: The email could not be sent
        """
        email = normalize_email(email)
        if not email:
            raise ValueError("Email is required")
        expiry_minutes = self._issuer.default_expiry_minutes

        if self._credentials.store.find_by_email(email) is None:
            logger.info("Reset code requested for an unknown account")
            return ResetRequest(email, REQUEST_ACCEPTED_MESSAGE, expiry_minutes)

        record = self._issuer.issue(email, metadata=metadata)
        try:
            self._sender.send_otp(email, record.code, record.expiry_minutes)
        except DeliveryError:
            # An undelivered code must not stay redeemable
            self._validator.invalidate_all(email)
            if self._events is not None:
                self._events.log_otp_delivery_failed(email)
            raise

        return ResetRequest(email, REQUEST_ACCEPTED_MESSAGE, record.expiry_minutes)

    def verify_code(self, email: str, code: str) -> ResetGrant:
        """
        Exchange a valid OTP for a reset token.

        Raises:
            OTPValidationError: Code rejected; .result holds the details
        """
        email = normalize_email(email)
        result = self._validator.validate(email, code)
        if not result.is_valid:
            raise OTPValidationError(result)

        token = secrets.token_urlsafe(RESET_TOKEN_BYTES)
        expires_at = self._clock() + self._grant_ttl
        with self._lock:
            self._grants[email] = (self._digest(token), expires_at)
        return ResetGrant(email=email, token=token, expires_at=expires_at)

    def _check_grant(self, email: str, token: str, consume: bool = False) -> None:
        with self._lock:
            entry = self._grants.get(email)
            if entry is None:
                raise InvalidResetTokenError()
            digest, expires_at = entry
            if self._clock() > expires_at:
                del self._grants[email]
                raise InvalidResetTokenError('Reset session has expired. Please request a new code.')
            if not hmac.compare_digest(self._digest(token or ''), digest):
                raise InvalidResetTokenError()
            if consume:
                del self._grants[email]

    def complete_reset(self, email: str, token: str, new_password: str,
                       confirm_password: Optional[str] = None) -> None:
        """
        Set a new password using a reset token.

        Password problems leave the token redeemable so the user can retry.

        Raises:
            InvalidResetTokenError: Unknown, expired or already used token
            WeakPasswordError: Confirmation mismatch or strength failure
            BreachedPasswordError: New password is breached
        """
        email = normalize_email(email)
        if confirm_password is not None and new_password != confirm_password:
            raise WeakPasswordError('Passwords do not match')

        self._check_grant(email, token)
        password_hash = self._credentials.accept_new_password(new_password, email)
        self._check_grant(email, token, consume=True)
        self._credentials.store_password_hash(email, password_hash)
        self._validator.invalidate_all(email)
        logger.info("Password reset completed")

    def pending_grants(self) -> int:
        with self._lock:
            return len(self._grants)


def create_password_reset_flow(settings: AuthSettings, account_store: AccountStore,
                               sender: Optional[EmailSender] = None,
                               event_logger: Optional[EventLogger] = None,
                               breach_checker=None,
                               hasher=None,
                               clock: Callable[[], float] = time.time) -> PasswordResetFlow:
    """
    Wire a reset flow with in-memory OTP storage.

    Args:
        settings: Tunables and OTP sealing keys
        account_store: Host application accounts
        sender: Email sender (SimulatedEmailSender if None)
        event_logger: Audit trail shared by all components
        breach_checker: Optional BreachChecker for new passwords
        hasher: Optional SecurePasswordHasher
        clock: Time source shared by all components

    Returns:
        Ready PasswordResetFlow
    """
    cipher = OTPCipher(key_provider_from_settings(settings))
    repository = InMemoryOTPRepository()
    locks = KeyedLocks()

    issuer = OTPIssuer(
        repository, InMemoryIssuanceHistory(settings.otp_history_size), cipher,
        settings=settings, clock=clock, event_logger=event_logger, locks=locks,
    )
    validator = OTPValidator(
        repository, cipher,
        settings=settings, clock=clock, event_logger=event_logger, locks=locks,
    )
    credentials = CredentialManager(
        account_store, hasher=hasher, breach_checker=breach_checker, event_logger=event_logger,
    )
    return PasswordResetFlow(
        issuer, validator,
        sender or SimulatedEmailSender(settings.app_name),
        credentials,
        event_logger=event_logger,
        clock=clock,
    )
