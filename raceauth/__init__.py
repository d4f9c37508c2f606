# RaceAuth
"""
Password and one-time-passcode authentication core for the sim racing
booking platform.

Sub-packages:
- auth: password hashing, strength rules, breach lookup, credential store
- otp: OTP issuance, sealed storage, validation, housekeeping, delivery
- integration: security event log and the forgot-password flow
"""

__version__ = "1.0.0"
