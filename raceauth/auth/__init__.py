# Authentication Module
"""
Password handling for the authentication core:
- Argon2id password hashing with legacy bcrypt verification - passwords.py
- Strength evaluation and secure password generation - passwords.py
- k-anonymity breach lookup (fail-open) - breach.py
- Account store interface and credential lifecycle - accounts.py
"""

from .passwords import (
    SecurePasswordHasher,
    StrengthResult,
    evaluate_password_strength,
    generate_secure_password,
    hash_password,
    verify_password,
    is_password_hash,
)

from .breach import (
    BreachChecker,
    BreachInfo,
    BreachUnavailable,
    sha1_prefix_suffix,
    parse_range_response,
)

from .accounts import (
    AccountStore,
    InMemoryAccountStore,
    CredentialRecord,
    CredentialManager,
    normalize_email,
)

__all__ = [
    # Passwords
    'SecurePasswordHasher',
    'StrengthResult',
    'evaluate_password_strength',
    'generate_secure_password',
    'hash_password',
    'verify_password',
    'is_password_hash',
    # Breach lookup
    'BreachChecker',
    'BreachInfo',
    'BreachUnavailable',
    'sha1_prefix_suffix',
    'parse_range_response',
    # Accounts
    'AccountStore',
    'InMemoryAccountStore',
    'CredentialRecord',
    'CredentialManager',
    'normalize_email',
]
