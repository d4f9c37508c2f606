# Integration Module
"""
Cross-module wiring:
- Security audit trail (event_logger.py)
- Forgot-password flow combining OTP challenge and credential reset (password_reset.py)
"""

# Lazy imports: auth and otp modules import event_logger from this package,
# and password_reset imports them back.
def __getattr__(name):
    if name in _EVENT_LOGGER_NAMES:
        from . import event_logger
        return getattr(event_logger, name)
    if name in _RESET_NAMES:
        from . import password_reset
        return getattr(password_reset, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


_EVENT_LOGGER_NAMES = {
    'EventLogger',
    'EventType',
    'SecurityEvent',
    'get_user_hash',
    'create_event_logger',
}

_RESET_NAMES = {
    'PasswordResetFlow',
    'ResetRequest',
    'ResetGrant',
    'create_password_reset_flow',
}

__all__ = sorted(_EVENT_LOGGER_NAMES | _RESET_NAMES)
