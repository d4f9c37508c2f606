"""
OTP Sealing Module

Encrypts OTP records before they reach the repository and opens them on
the way back.

- AES-256-GCM authenticated encryption
- HKDF-SHA256 stretches configured secrets into 256-bit keys
- The normalized email is bound as associated data
- Key ids in the envelope allow rotation: new seals use the active key,
  older keys stay readable until retired

Envelope:
    v1.<key_id>.<urlsafe-base64(nonce (12 bytes) | ciphertext | tag (16 bytes))>
"""

import base64
import binascii
import json
import os
import secrets
from typing import Dict, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..config import ENV_PREFIX, parse_key_list
from ..errors import ConfigurationError, OTPDecryptError
from .records import OTPRecord


ENVELOPE_VERSION = "v1"
KEY_SIZE = 32       # 256-bit keys
NONCE_SIZE = 12     # 96-bit nonce for GCM
TAG_SIZE = 16
HKDF_INFO = b"raceauth-otp-seal"
MIN_SECRET_LENGTH = 16


def derive_key(secret: str) -> bytes:
    """
    Derive a 256-bit AES key from a configured secret.

    Args:
        secret: Secret string from configuration

    Returns:
        32-byte key
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=HKDF_INFO,
    )
    return hkdf.derive(secret.encode('utf-8'))


class KeyProvider:
    """
    Source of sealing keys.

    Subclasses fill self._keys (key_id -> 32-byte key) and self._active.
    """

    def __init__(self, secrets_by_id: Dict[str, str], active_key_id: Optional[str] = None):
        if not secrets_by_id:
            raise ConfigurationError('At least one OTP sealing key is required')
        for key_id, secret in secrets_by_id.items():
            if '.' in key_id:
                raise ConfigurationError(f"OTP key id {key_id!r} must not contain '.'")
            if len(secret) < MIN_SECRET_LENGTH:
                raise ConfigurationError(
                    f"OTP key {key_id!r} is shorter than {MIN_SECRET_LENGTH} characters"
                )
        active_key_id = active_key_id or next(iter(secrets_by_id))
        if active_key_id not in secrets_by_id:
            raise ConfigurationError(f"Active OTP key {active_key_id!r} is not configured")

        self._keys = {key_id: derive_key(secret) for key_id, secret in secrets_by_id.items()}
        self._active = active_key_id

    def current(self) -> Tuple[str, bytes]:
        """Key used for new seals, as (key_id, key)."""
        return self._active, self._keys[self._active]

    def get(self, key_id: str) -> Optional[bytes]:
        """Key for opening an existing envelope, or None if retired."""
        return self._keys.get(key_id)

    @property
    def key_ids(self):
        return list(self._keys)


class StaticKeyProvider(KeyProvider):
    """Keys passed in directly (tests, or secrets fetched by the host app)."""


class EnvKeyProvider(KeyProvider):
    """Keys read from RACEAUTH_OTP_KEYS / RACEAUTH_OTP_ACTIVE_KEY."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        environ = os.environ if environ is None else environ
        raw = environ.get(ENV_PREFIX + 'OTP_KEYS', '')
        keys = parse_key_list(raw)
        if not keys:
            raise ConfigurationError(f'{ENV_PREFIX}OTP_KEYS is not set')
        super().__init__(keys, environ.get(ENV_PREFIX + 'OTP_ACTIVE_KEY') or None)


def key_provider_from_settings(settings) -> KeyProvider:
    """Build a key provider from AuthSettings.otp_keys."""
    return StaticKeyProvider(settings.otp_keys, settings.otp_active_key_id)


class OTPCipher:
    """
    Seals and opens OTP records.

    Example:
        >>> cipher = OTPCipher(StaticKeyProvider({'k1': 'a' * 32}))
        >>> sealed = cipher.seal(record)
        >>> cipher.open(record.email, sealed) == record
        True
    """

    def __init__(self, key_provider: KeyProvider):
        self._keys = key_provider

    def seal(self, record: OTPRecord) -> str:
        """Encrypt a record under the active key."""
        key_id, key = self._keys.current()
        nonce = secrets.token_bytes(NONCE_SIZE)
        plaintext = json.dumps(record.to_dict(), separators=(',', ':')).encode('utf-8')
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, record.email.encode('utf-8'))
        blob = base64.urlsafe_b64encode(nonce + ciphertext).decode('ascii')
        return f"{ENVELOPE_VERSION}.{key_id}.{blob}"

    def open(self, email: str, sealed: str) -> OTPRecord:
        """
        Decrypt a sealed record stored under email.

        Raises:
            OTPDecryptError: Unknown version or key, tampering, wrong email,
                or a payload that is not a valid record
        """
        try:
            version, key_id, blob = sealed.split('.', 2)
        except (AttributeError, ValueError):
            raise OTPDecryptError('Malformed OTP envelope')
        if version != ENVELOPE_VERSION:
            raise OTPDecryptError(f'Unsupported OTP envelope version {version!r}')

        key = self._keys.get(key_id)
        if key is None:
            raise OTPDecryptError(f'Unknown OTP key id {key_id!r}')

        try:
            raw = base64.urlsafe_b64decode(blob.encode('ascii'))
        except (binascii.Error, ValueError):
            raise OTPDecryptError('OTP envelope is not valid base64')
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise OTPDecryptError('OTP envelope is truncated')

        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, email.encode('utf-8'))
        except InvalidTag:
            raise OTPDecryptError('OTP envelope failed authentication')

        try:
            record = OTPRecord.from_dict(json.loads(plaintext))
        except (KeyError, TypeError, ValueError):
            raise OTPDecryptError('OTP payload is not a valid record')
        if record.email != email:
            raise OTPDecryptError('OTP record does not belong to this email')
        return record

    def needs_reseal(self, sealed: str) -> bool:
        """True when an envelope was sealed with a non-active key."""
        active_id, _ = self._keys.current()
        parts = sealed.split('.', 2)
        return len(parts) != 3 or parts[1] != active_id
