"""
Runtime configuration.

Defaults live as module constants; AuthSettings collects them and can be
overridden from the environment (a local .env file is loaded first).

Environment variables:
    RACEAUTH_APP_NAME
    RACEAUTH_OTP_EXPIRY_MINUTES
    RACEAUTH_OTP_MAX_ATTEMPTS
    RACEAUTH_OTP_HOURLY_LIMIT
    RACEAUTH_OTP_RATE_WINDOW_SECONDS
    RACEAUTH_OTP_MIN_SPACING_SECONDS
    RACEAUTH_OTP_HISTORY_SIZE
    RACEAUTH_OTP_SWEEP_INTERVAL_SECONDS
    RACEAUTH_BREACH_API_URL
    RACEAUTH_BREACH_TIMEOUT_SECONDS
    RACEAUTH_BREACH_USER_AGENT
    RACEAUTH_OTP_KEYS            "key_id:secret[,key_id:secret...]"
    RACEAUTH_OTP_ACTIVE_KEY      key_id used for new seals
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError


APP_NAME = "VIP SIM RACING"

# OTP lifecycle
OTP_CODE_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
OTP_MAX_ATTEMPTS = 5

# OTP issuance gates
OTP_HOURLY_LIMIT = 3
OTP_RATE_WINDOW_SECONDS = 3600
OTP_MIN_SPACING_SECONDS = 120
OTP_HISTORY_SIZE = 10

# Housekeeping
OTP_SWEEP_INTERVAL_SECONDS = 300

# Breach lookup (k-anonymity range API)
BREACH_API_URL = "https://api.pwnedpasswords.com/range/"
BREACH_TIMEOUT_SECONDS = 5.0
BREACH_USER_AGENT = "raceauth-breach-check/1.0"

ENV_PREFIX = "RACEAUTH_"


def parse_key_list(raw: str) -> Dict[str, str]:
    """
    Parse "id:secret,id2:secret2" into a dict.

    Raises:
        ConfigurationError: On an entry without an id or secret
    """
    keys = {}
    for entry in raw.split(','):
        entry = entry.strip()
        if not entry:
            continue
        key_id, sep, secret = entry.partition(':')
        if not sep or not key_id.strip() or not secret:
            raise ConfigurationError(f"Malformed OTP key entry: {key_id.strip() or '<empty>'!r}")
        keys[key_id.strip()] = secret
    return keys


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")


@dataclass
class AuthSettings:
    """All tunables of the authentication core."""
    app_name: str = APP_NAME
    otp_code_length: int = OTP_CODE_LENGTH
    otp_expiry_minutes: int = OTP_EXPIRY_MINUTES
    otp_max_attempts: int = OTP_MAX_ATTEMPTS
    otp_hourly_limit: int = OTP_HOURLY_LIMIT
    otp_rate_window_seconds: int = OTP_RATE_WINDOW_SECONDS
    otp_min_spacing_seconds: int = OTP_MIN_SPACING_SECONDS
    otp_history_size: int = OTP_HISTORY_SIZE
    otp_sweep_interval_seconds: int = OTP_SWEEP_INTERVAL_SECONDS
    breach_api_url: str = BREACH_API_URL
    breach_timeout_seconds: float = BREACH_TIMEOUT_SECONDS
    breach_user_agent: str = BREACH_USER_AGENT
    otp_keys: Dict[str, str] = field(default_factory=dict)
    otp_active_key_id: Optional[str] = None

    def __post_init__(self):
        if self.otp_code_length < 4:
            raise ConfigurationError("otp_code_length must be at least 4")
        if self.otp_max_attempts < 1:
            raise ConfigurationError("otp_max_attempts must be positive")
        if self.otp_hourly_limit < 1:
            raise ConfigurationError("otp_hourly_limit must be positive")
        if self.otp_rate_window_seconds < 1:
            raise ConfigurationError("otp_rate_window_seconds must be positive")
        if self.otp_sweep_interval_seconds < 1:
            raise ConfigurationError("otp_sweep_interval_seconds must be positive")
        if self.otp_history_size < self.otp_hourly_limit:
            raise ConfigurationError("otp_history_size must cover otp_hourly_limit entries")
        if self.breach_timeout_seconds <= 0:
            raise ConfigurationError("breach_timeout_seconds must be positive")
        if self.otp_active_key_id and self.otp_active_key_id not in self.otp_keys:
            raise ConfigurationError(
                f"Active OTP key {self.otp_active_key_id!r} is not among the configured keys"
            )

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'AuthSettings':
        """
        Build settings from RACEAUTH_* environment variables.

        Args:
            dotenv_path: Optional explicit .env path (default: search upwards)

        Returns:
            AuthSettings with environment overrides applied
        """
        load_dotenv(dotenv_path)

        keys = parse_key_list(os.getenv(ENV_PREFIX + 'OTP_KEYS', ''))
        active = os.getenv(ENV_PREFIX + 'OTP_ACTIVE_KEY') or None
        if keys and active is None:
            # First listed key is the active one unless stated otherwise
            active = next(iter(keys))

        return cls(
            app_name=os.getenv(ENV_PREFIX + 'APP_NAME', APP_NAME),
            otp_expiry_minutes=_env_int('OTP_EXPIRY_MINUTES', OTP_EXPIRY_MINUTES),
            otp_max_attempts=_env_int('OTP_MAX_ATTEMPTS', OTP_MAX_ATTEMPTS),
            otp_hourly_limit=_env_int('OTP_HOURLY_LIMIT', OTP_HOURLY_LIMIT),
            otp_rate_window_seconds=_env_int('OTP_RATE_WINDOW_SECONDS', OTP_RATE_WINDOW_SECONDS),
            otp_min_spacing_seconds=_env_int('OTP_MIN_SPACING_SECONDS', OTP_MIN_SPACING_SECONDS),
            otp_history_size=_env_int('OTP_HISTORY_SIZE', OTP_HISTORY_SIZE),
            otp_sweep_interval_seconds=_env_int(
                'OTP_SWEEP_INTERVAL_SECONDS', OTP_SWEEP_INTERVAL_SECONDS
            ),
            breach_api_url=os.getenv(ENV_PREFIX + 'BREACH_API_URL', BREACH_API_URL),
            breach_timeout_seconds=_env_float('BREACH_TIMEOUT_SECONDS', BREACH_TIMEOUT_SECONDS),
            breach_user_agent=os.getenv(ENV_PREFIX + 'BREACH_USER_AGENT', BREACH_USER_AGENT),
            otp_keys=keys,
            otp_active_key_id=active,
        )
