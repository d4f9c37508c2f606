"""
Event Logger Module

Security audit trail for the authentication core. Every credential and
OTP decision is recorded as a SecurityEvent and forwarded to the
"raceauth.audit" logger.

Features:
- OTP issuance, rate limiting, validation and invalidation events
- Password change / reset / rejection events
- Breach-service outage events (fail-open is visible to operators)
- Privacy-preserving email hashes (SHA-256), never plaintext addresses
- Bounded in-memory history for inspection and tests
"""

import hashlib
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional


AUDIT_LOGGER_NAME = "raceauth.audit"
EVENT_VERSION = "1.0"
DEFAULT_HISTORY_SIZE = 1000

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
logger = logging.getLogger(__name__)


# ============================================================================
# Privacy Functions
# ============================================================================

def get_user_hash(email: str) -> str:
    """
    Compute privacy-preserving hash of an email address.

    Events for the same account can still be correlated, but the audit
    trail never carries the address itself.

    Args:
        email: The plaintext email (normalized before hashing)

    Returns:
        Hex-encoded SHA-256 hash
    """
    normalized = (email or '').strip().lower()
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of security events that can be logged."""

    # OTP lifecycle
    OTP_ISSUED = "otp_issued"
    OTP_RATE_LIMITED = "otp_rate_limited"
    OTP_DELIVERY_FAILED = "otp_delivery_failed"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    OTP_INVALIDATED = "otp_invalidated"
    OTP_SWEPT = "otp_swept"

    # Credential events
    ACCOUNT_REGISTERED = "account_registered"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    PASSWORD_REJECTED = "password_rejected"
    PASSWORD_REHASHED = "password_rehashed"

    # Dependencies
    BREACH_CHECK_UNAVAILABLE = "breach_check_unavailable"


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """
    A single audit record.

    All user-identifying information is hashed for privacy.
    """
    event_type: EventType
    user_hash: str
    timestamp: int
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Compact JSON form used for the audit log line."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'user': self.user_hash[:16],
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            'details': self.details,
        }, separators=(',', ':'), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> 'SecurityEvent':
        data = json.loads(raw)
        return cls(
            event_type=EventType(data['type']),
            user_hash=data['user'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"user:{self.user_hash[:8]}..."
        )


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    In-process security audit log.

    Events are kept in a bounded history and written to the
    "raceauth.audit" logger as one JSON line each, so deployments can route
    them to their own log pipeline with standard logging configuration.
    """

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], float] = time.time,
        sink: Optional[logging.Logger] = None,
    ):
        """
        Args:
            history_size: Number of events retained in memory
            clock: Time source (epoch seconds)
            sink: Logger receiving the JSON lines (default: raceauth.audit)
        """
        self._events: Deque[SecurityEvent] = deque(maxlen=history_size)
        self._clock = clock
        self._sink = sink or audit_logger
        self._callbacks: List[Callable[[SecurityEvent], None]] = []
        self._lock = threading.Lock()

    def record(self, event_type: EventType, email: Optional[str] = None,
               **details: Any) -> SecurityEvent:
        """
        Record an event.

        Args:
            event_type: Kind of event
            email: Subject account (hashed before storage); None for system events
            **details: Extra non-sensitive fields

        Returns:
            The recorded event
        """
        event = SecurityEvent(
            event_type=event_type,
            user_hash=get_user_hash(email) if email else "system",
            timestamp=int(self._clock()),
            details={k: v for k, v in details.items() if v is not None},
        )
        with self._lock:
            self._events.append(event)
            callbacks = list(self._callbacks)

        self._sink.info(event.to_json())

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                # A broken subscriber must not break the auth path
                logger.exception("Security event callback failed for %s", event_type.value)
        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    # ========================================================================
    # OTP Events
    # ========================================================================

    def log_otp_issued(self, email: str, expiry_minutes: int,
                       ip_address: Optional[str] = None,
                       user_agent: Optional[str] = None) -> SecurityEvent:
        """
        Log an OTP issuance.

        The IP is hashed and the user agent truncated; the code itself is
        never part of an event.
        """
        return self.record(
            EventType.OTP_ISSUED,
            email,
            expiry_minutes=expiry_minutes,
            ip_hash=hashlib.sha256(ip_address.encode()).hexdigest()[:16] if ip_address else None,
            ua=user_agent[:50] if user_agent else None,
        )

    def log_otp_rate_limited(self, email: str, reason: str, wait_seconds: int) -> SecurityEvent:
        return self.record(EventType.OTP_RATE_LIMITED, email,
                           reason=reason, wait_seconds=wait_seconds)

    def log_otp_delivery_failed(self, email: str) -> SecurityEvent:
        return self.record(EventType.OTP_DELIVERY_FAILED, email)

    def log_otp_validation(self, email: str, success: bool,
                           failure: Optional[str] = None,
                           attempts_remaining: Optional[int] = None) -> SecurityEvent:
        """Log the outcome of an OTP validation."""
        return self.record(
            EventType.OTP_VERIFIED if success else EventType.OTP_FAILED,
            email,
            failure=failure,
            attempts_remaining=attempts_remaining,
        )

    def log_otp_invalidated(self, email: str) -> SecurityEvent:
        return self.record(EventType.OTP_INVALIDATED, email)

    def log_otp_swept(self, removed: int) -> SecurityEvent:
        return self.record(EventType.OTP_SWEPT, removed=removed)

    # ========================================================================
    # Credential Events
    # ========================================================================

    def log_password_event(self, event_type: EventType, email: Optional[str],
                           **details: Any) -> SecurityEvent:
        """Log a credential lifecycle event (registration, change, reset...)."""
        return self.record(event_type, email, **details)

    def log_login(self, email: str, success: bool) -> SecurityEvent:
        return self.record(EventType.LOGIN_SUCCESS if success else EventType.LOGIN_FAILED, email)

    def log_breach_unavailable(self, reason: str) -> SecurityEvent:
        """Log that a breach lookup failed open."""
        return self.record(EventType.BREACH_CHECK_UNAVAILABLE, reason=reason)

    # ========================================================================
    # Retrieval
    # ========================================================================

    def get_all_events(self) -> List[SecurityEvent]:
        with self._lock:
            return list(self._events)

    def get_user_events(self, email: str) -> List[SecurityEvent]:
        """
        Get all events for a specific account.

        Args:
            email: The account email

        Returns:
            List of events for that account, oldest first
        """
        user_hash = get_user_hash(email)
        return [e for e in self.get_all_events() if e.user_hash == user_hash]

    def get_events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        """Get all events of a specific type."""
        return [e for e in self.get_all_events() if e.event_type == event_type]

    def get_recent_events(self, count: int = 10) -> List[SecurityEvent]:
        events = self.get_all_events()
        return events[-count:]

    def export_log(self) -> str:
        """Export the retained events as JSON lines."""
        return '\n'.join(e.to_json() for e in self.get_all_events())

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def create_event_logger(history_size: int = DEFAULT_HISTORY_SIZE) -> EventLogger:
    """Create a new event logger."""
    return EventLogger(history_size=history_size)
