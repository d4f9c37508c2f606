# OTP Module
"""
Email one-time passcodes for password recovery:
- Record and result types - records.py
- AES-256-GCM sealing at rest with rotating keys - sealing.py
- Storage interfaces and per-email locks - repository.py
- Rate-limited issuance - issuer.py
- At-most-once validation - validator.py
- Scheduled cleanup - sweeper.py
- Email delivery collaborator - delivery.py
"""

from .records import (
    OTPRecord,
    OTPFailure,
    RequestMetadata,
    ValidationResult,
    RateLimitStatus,
)

from .sealing import (
    KeyProvider,
    StaticKeyProvider,
    EnvKeyProvider,
    OTPCipher,
    key_provider_from_settings,
)

from .repository import (
    OTPRepository,
    InMemoryOTPRepository,
    IssuanceHistory,
    InMemoryIssuanceHistory,
    KeyedLocks,
)

from .issuer import OTPIssuer, generate_otp_code
from .validator import OTPValidator, format_time_remaining, resend_allowed
from .sweeper import OTPSweeper
from .delivery import EmailSender, SimulatedEmailSender, build_otp_email

__all__ = [
    # Records
    'OTPRecord',
    'OTPFailure',
    'RequestMetadata',
    'ValidationResult',
    'RateLimitStatus',
    # Sealing
    'KeyProvider',
    'StaticKeyProvider',
    'EnvKeyProvider',
    'OTPCipher',
    'key_provider_from_settings',
    # Storage
    'OTPRepository',
    'InMemoryOTPRepository',
    'IssuanceHistory',
    'InMemoryIssuanceHistory',
    'KeyedLocks',
    # Issue / validate
    'OTPIssuer',
    'generate_otp_code',
    'OTPValidator',
    'format_time_remaining',
    'resend_allowed',
    'OTPSweeper',
    # Delivery
    'EmailSender',
    'SimulatedEmailSender',
    'build_otp_email',
]
