"""
Credential Management Module

Accepting, storing and checking account passwords.

The account store itself belongs to the host application; this module only
needs find_by_email / upsert. CredentialManager runs every new password
through the same pipeline:

    strength evaluation -> breach lookup (fail-open) -> Argon2id hash

and upgrades legacy credentials (plaintext or bcrypt) on the next
successful login.
"""

import hmac
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, Optional

from ..errors import (
    AccountExistsError,
    AccountNotFoundError,
    BreachedPasswordError,
    InvalidCredentialsError,
    WeakPasswordError,
)
from ..integration.event_logger import EventType
from .passwords import (
    SecurePasswordHasher,
    evaluate_password_strength,
    generate_secure_password,
    is_password_hash,
)


logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Lowercase and trim an email address (the lookup key everywhere)."""
    return (email or '').strip().lower()


@dataclass(frozen=True)
class CredentialRecord:
    """Credential part of an account record."""
    email: str
    password_hash: str


class AccountStore(ABC):
    """Host-application account storage, as seen by the auth core."""

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[CredentialRecord]:
        """Return the record for a normalized email, or None."""

    @abstractmethod
    def upsert(self, record: CredentialRecord) -> None:
        """Create or replace the record keyed by record.email."""


class InMemoryAccountStore(AccountStore):
    """Dict-backed store for tests and local development."""

    def __init__(self):
        self._records: Dict[str, CredentialRecord] = {}
        self._lock = threading.Lock()

    def find_by_email(self, email: str) -> Optional[CredentialRecord]:
        with self._lock:
            return self._records.get(normalize_email(email))

    def upsert(self, record: CredentialRecord) -> None:
        record = replace(record, email=normalize_email(record.email))
        with self._lock:
            self._records[record.email] = record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class CredentialManager:
    """
    Password lifecycle operations over an AccountStore.

    Example:
        >>> manager = CredentialManager(InMemoryAccountStore())
        >>> manager.register("alice@example.com", "Str0ngP@ssword2024")
        >>> manager.authenticate("alice@example.com", "Str0ngP@ssword2024")
        True
    """

    def __init__(self, store: AccountStore,
                 hasher: Optional[SecurePasswordHasher] = None,
                 breach_checker=None,
                 event_logger=None):
        """
        Args:
            store: Account store collaborator
            hasher: Password hasher (default Argon2id parameters if None)
            breach_checker: Optional BreachChecker; None skips the lookup
            event_logger: Optional EventLogger for the audit trail
        """
        self._store = store
        self._hasher = hasher or SecurePasswordHasher()
        self._breach_checker = breach_checker
        self._events = event_logger

    def _log(self, event_type: EventType, email: Optional[str], **details) -> None:
        if self._events is not None:
            self._events.log_password_event(event_type, email, **details)

    def accept_new_password(self, password: str, email: Optional[str] = None) -> str:
        """
        Validate a new password and return its hash.

        Args:
            password: Candidate plaintext password
            email: Account the password is for (audit only)

        Returns:
            Argon2id hash ready to store

        Raises:
            WeakPasswordError: Strength rules unmet
            BreachedPasswordError: Password is in the breach corpus
        """
        strength = evaluate_password_strength(password)
        if not strength.is_valid:
            self._log(EventType.PASSWORD_REJECTED, email, reason='weak', score=strength.score)
            raise WeakPasswordError(strength.message, strength.score)

        if self._breach_checker is not None:
            breach = self._breach_checker.check_breach(password)
            if breach.is_compromised:
                self._log(EventType.PASSWORD_REJECTED, email, reason='breached')
                raise BreachedPasswordError(breach.count)

        return self._hasher.hash_password(password)

    def register(self, email: str, password: str) -> CredentialRecord:
        """
        Create a credential record for a new account.

        Raises:
            AccountExistsError: Email already registered
            WeakPasswordError / BreachedPasswordError: From the acceptance pipeline
        """
        email = normalize_email(email)
        if not email:
            raise ValueError('Email is required')
        if self._store.find_by_email(email) is not None:
            raise AccountExistsError('An account with this email already exists')

        record = CredentialRecord(email=email, password_hash=self.accept_new_password(password, email))
        self._store.upsert(record)
        self._log(EventType.ACCOUNT_REGISTERED, email)
        return record

    def authenticate(self, email: str, password: str) -> bool:
        """
        Check a login password, upgrading legacy storage on success.

        Legacy plaintext values are compared in constant time and replaced by
        a hash; bcrypt or outdated Argon2 hashes are rehashed.
        """
        email = normalize_email(email)
        record = self._store.find_by_email(email)
        if record is None:
            if self._events is not None:
                self._events.log_login(email, False)
            return False

        stored = record.password_hash
        if is_password_hash(stored):
            valid = self._hasher.verify_password(password, stored)
        else:
            valid = bool(password) and hmac.compare_digest(
                password.encode('utf-8'), (stored or '').encode('utf-8')
            )

        if self._events is not None:
            self._events.log_login(email, valid)
        if not valid:
            return False

        if not is_password_hash(stored) or self._hasher.needs_rehash(stored):
            self._store.upsert(replace(record, password_hash=self._hasher.hash_password(password)))
            logger.info("Upgraded stored credential format for an account")
            self._log(EventType.PASSWORD_REHASHED, email)
        return True

    def change_password(self, email: str, current_password: str, new_password: str,
                        confirm_password: Optional[str] = None) -> CredentialRecord:
        """
        Change a password for a signed-in user.

        Raises:
            AccountNotFoundError: Unknown email
            InvalidCredentialsError: Current password is wrong
            WeakPasswordError: Confirmation mismatch, reuse, or strength failure
            BreachedPasswordError: New password is breached
        """
        email = normalize_email(email)
        record = self._store.find_by_email(email)
        if record is None:
            raise AccountNotFoundError('User not found')

        if not self.authenticate(email, current_password):
            raise InvalidCredentialsError('Current password is incorrect')
        if confirm_password is not None and new_password != confirm_password:
            raise WeakPasswordError('Passwords do not match')
        if current_password == new_password:
            raise WeakPasswordError('New password must be different from current password')

        updated = CredentialRecord(email=email, password_hash=self.accept_new_password(new_password, email))
        self._store.upsert(updated)
        self._log(EventType.PASSWORD_CHANGED, email)
        return updated

    def reset_password(self, email: str, new_password: str) -> CredentialRecord:
        """
        Replace a password after an out-of-band identity challenge.

        The caller is responsible for the challenge (see PasswordResetFlow).
        """
        email = normalize_email(email)
        if self._store.find_by_email(email) is None:
            raise AccountNotFoundError('User not found')
        return self.store_password_hash(email, self.accept_new_password(new_password, email))

    def store_password_hash(self, email: str, password_hash: str) -> CredentialRecord:
        """Store a hash already produced by accept_new_password as a reset."""
        email = normalize_email(email)
        if self._store.find_by_email(email) is None:
            raise AccountNotFoundError('User not found')

        updated = CredentialRecord(email=email, password_hash=password_hash)
        self._store.upsert(updated)
        self._log(EventType.PASSWORD_RESET, email)
        return updated

    def admin_reset_password(self, email: str, length: int = 16) -> str:
        """
        Assign a generated password (admin console action).

        The generator satisfies the strength policy by construction, so the
        password is hashed directly.

        Returns:
            The generated plaintext, to be shown to the admin once
        """
        if length < 12:
            raise ValueError('Generated passwords must be at least 12 characters')
        email = normalize_email(email)
        if self._store.find_by_email(email) is None:
            raise AccountNotFoundError('User not found')

        password = generate_secure_password(length)
        self._store.upsert(CredentialRecord(email=email, password_hash=self._hasher.hash_password(password)))
        self._log(EventType.PASSWORD_RESET, email, initiated_by='admin')
        return password

    @property
    def store(self) -> AccountStore:
        return self._store
