# RaceAuth Test Suite
"""
Test suite including:
- Unit tests (passwords, breach lookup, OTP, accounts, config)
- Integration tests (forgot-password flow, audit trail)
- Security tests (tampering, replay, rate limits)

Run with: pytest
"""
