"""
OTP data types.

OTPRecord is the unit that gets sealed and stored per email;
ValidationResult is what the validator hands back to callers.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


MS_PER_MINUTE = 60 * 1000


@dataclass
class RequestMetadata:
    """Where an OTP request came from. Informational only."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class OTPRecord:
    """A one-time passcode issued to an email address."""
    code: str
    email: str
    issued_at_ms: int
    expiry_minutes: int
    attempts: int = 0
    used: bool = False
    metadata: RequestMetadata = field(default_factory=RequestMetadata)

    @property
    def expires_at_ms(self) -> int:
        return self.issued_at_ms + self.expiry_minutes * MS_PER_MINUTE

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at_ms

    def remaining_seconds(self, now_ms: int) -> int:
        """Whole seconds of validity left (0 once expired)."""
        return max(0, (self.expires_at_ms - now_ms) // 1000)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OTPRecord':
        """
        Rebuild a record from its dict form.

        Raises:
            KeyError / TypeError / ValueError: On a malformed payload
        """
        meta = data.get('metadata') or {}
        return cls(
            code=str(data['code']),
            email=str(data['email']),
            issued_at_ms=int(data['issued_at_ms']),
            expiry_minutes=int(data['expiry_minutes']),
            attempts=int(data.get('attempts', 0)),
            used=bool(data.get('used', False)),
            metadata=RequestMetadata(
                ip_address=meta.get('ip_address'),
                user_agent=meta.get('user_agent'),
            ),
        )


class OTPFailure(Enum):
    """Distinct validation failure modes (drive "resend" vs "re-enter" UI)."""
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    ALREADY_USED = "already_used"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of OTPValidator.validate."""
    is_valid: bool
    message: str
    failure: Optional[OTPFailure] = None
    attempts_remaining: Optional[int] = None
    time_remaining: Optional[int] = None

    @property
    def should_resend(self) -> bool:
        """True when the user needs a new code rather than another try."""
        return self.failure in (
            OTPFailure.NOT_FOUND, OTPFailure.EXPIRED,
            OTPFailure.EXHAUSTED, OTPFailure.ALREADY_USED,
        )


@dataclass(frozen=True)
class RateLimitStatus:
    """Whether a new OTP may be requested right now."""
    allowed: bool
    wait_seconds: int = 0
    reason: Optional[str] = None
