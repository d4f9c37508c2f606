"""
Password Security Module

Implements at-rest password storage and the password policy.

Features:
- Argon2id password hashing (fresh random salt per hash)
- Verification of legacy bcrypt hashes (cost 12) from the previous platform
- Detection of legacy plaintext values so they can be migrated
- Password strength evaluation with incremental, first-issue feedback
- Secure password generation that always satisfies the policy

Security considerations:
- Never store plaintext passwords
- Hash verification is timing-safe (delegated to argon2-cffi / bcrypt)
- Malformed hashes verify as False instead of raising
- Generator and shuffling use the secrets CSPRNG
"""

import secrets
import string
from dataclasses import dataclass
from typing import Optional

import bcrypt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


# Argon2id configuration
# Tuned so a hash stays interactive (well under ~300 ms on a server core)
# - time_cost: number of iterations
# - memory_cost: memory usage in KiB
# - parallelism: number of parallel lanes
ARGON2_CONFIG = {
    'time_cost': 3,
    'memory_cost': 65536,    # 64 MiB
    'parallelism': 4,
    'hash_len': 32,          # 256-bit hash
    'salt_len': 16,          # 128-bit salt
    'type': Type.ID,
}

ARGON2_PREFIX = '$argon2'
BCRYPT_PREFIXES = ('$2a$', '$2b$', '$2y$')
BCRYPT_MAX_BYTES = 72    # bcrypt only ever considered the first 72 bytes

# Strength policy
PASSWORD_MIN_LENGTH = 12
PASSWORD_BONUS_LENGTH = 16
PASSWORD_MIN_SCORE = 5
SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>?"

STRENGTH_OK_MESSAGE = 'Password meets security requirements'

# Generator alphabets
GENERATOR_SYMBOLS = '!@#$%^&*()_+-=[]{}|;:,.<>?'
GENERATOR_DEFAULT_LENGTH = 16

_system_random = secrets.SystemRandom()


def is_password_hash(value: Optional[str]) -> bool:
    """
    Check whether a stored value is in a recognised hash format.

    Anything else found in a credential record is a legacy plaintext
    password that must be migrated.
    """
    if not value:
        return False
    return value.startswith(ARGON2_PREFIX) or value.startswith(BCRYPT_PREFIXES)


class SecurePasswordHasher:
    """
    Argon2id password hasher with legacy bcrypt verification.

    Example:
        >>> hasher = SecurePasswordHasher()
        >>> stored = hasher.hash_password("Str0ngP@ssword2024")
        >>> hasher.verify_password("Str0ngP@ssword2024", stored)
        True
    """

    def __init__(self, **kwargs):
        """
        Args:
            **kwargs: Override default Argon2 parameters (see ARGON2_CONFIG)
        """
        config = ARGON2_CONFIG.copy()
        config.update(kwargs)

        self._hasher = PasswordHasher(
            time_cost=config['time_cost'],
            memory_cost=config['memory_cost'],
            parallelism=config['parallelism'],
            hash_len=config['hash_len'],
            salt_len=config['salt_len'],
            type=config['type']
        )

    def hash_password(self, password: str) -> str:
        """
        Hash a password with Argon2id.

        The output embeds algorithm, parameters and salt, so two calls
        with the same input never produce the same string.

        Args:
            password: Plaintext password

        Returns:
            Argon2id hash string

        Raises:
            ValueError: If password is empty or None
        """
        if not password:
            raise ValueError('Password must not be empty')
        return self._hasher.hash(password)

    def verify_password(self, password: str, hash_str: Optional[str]) -> bool:
        """
        Verify a password against a stored hash.

        Args:
            password: Plaintext password to check
            hash_str: Argon2id or legacy bcrypt hash

        Returns:
            True on match; False on mismatch or malformed/unknown hash
        """
        if not password or not hash_str:
            return False

        if hash_str.startswith(BCRYPT_PREFIXES):
            return self._verify_bcrypt(password, hash_str)

        if not hash_str.startswith(ARGON2_PREFIX):
            return False

        try:
            return self._hasher.verify(hash_str, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            # Corrupted hash string
            return False

    def needs_rehash(self, hash_str: str) -> bool:
        """
        Check whether a stored hash should be regenerated.

        Legacy bcrypt hashes always qualify; Argon2 hashes qualify when
        their parameters differ from the current configuration.
        """
        if hash_str.startswith(BCRYPT_PREFIXES):
            return True
        try:
            return self._hasher.check_needs_rehash(hash_str)
        except InvalidHashError:
            return True

    @staticmethod
    def _verify_bcrypt(password: str, hash_str: str) -> bool:
        candidate = password.encode('utf-8')[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(candidate, hash_str.encode('utf-8'))
        except ValueError:
            # Invalid salt / truncated hash
            return False


@dataclass(frozen=True)
class StrengthResult:
    """Outcome of a strength evaluation."""
    is_valid: bool
    message: str
    score: int


def evaluate_password_strength(password: str) -> StrengthResult:
    """
    Score a candidate password against the composition rules.

    Rules are checked in a fixed order and every satisfied rule adds to the
    score. The message reports only the first blocking issue so feedback
    stays incremental while the user types.

    Letter and digit classes are ASCII only; accented letters and
    non-Latin digits do not satisfy them.

    Args:
        password: Candidate password

    Returns:
        StrengthResult(is_valid, message, score)
    """
    password = password or ''
    length = len(password)
    specials = {c for c in password if c in SPECIAL_CHARACTERS}

    # (passed, points, required, failure message)
    checklist = [
        (length >= PASSWORD_MIN_LENGTH, 2, True,
         f'Password must be at least {PASSWORD_MIN_LENGTH} characters long'),
        (any(c in string.ascii_lowercase for c in password), 1, True,
         'Password must contain at least one lowercase letter'),
        (any(c in string.ascii_uppercase for c in password), 1, True,
         'Password must contain at least one uppercase letter'),
        (any(c in string.digits for c in password), 1, True,
         'Password must contain at least one number'),
        (bool(specials), 1, True,
         'Password must contain at least one special character'),
        (length >= PASSWORD_BONUS_LENGTH, 1, False, None),
        (len(specials) >= 2, 1, False, None),
    ]

    score = 0
    first_issue = None
    for passed, points, required, message in checklist:
        if passed:
            score += points
        elif required and first_issue is None:
            first_issue = message

    if first_issue is not None:
        return StrengthResult(is_valid=False, message=first_issue, score=score)
    if score < PASSWORD_MIN_SCORE:
        return StrengthResult(is_valid=False, message='Password is too weak', score=score)
    return StrengthResult(is_valid=True, message=STRENGTH_OK_MESSAGE, score=score)


def generate_secure_password(length: int = GENERATOR_DEFAULT_LENGTH) -> str:
    """
    Generate a random password that satisfies the strength policy.

    One character from each class is seeded, the rest is drawn from the
    combined alphabet, and the result is shuffled so the seeded characters
    have no fixed position.

    Args:
        length: Password length (at least 4; 12 or more to pass the policy)

    Returns:
        Generated password

    Raises:
        ValueError: If length is below 4
    """
    classes = [string.ascii_lowercase, string.ascii_uppercase, string.digits, GENERATOR_SYMBOLS]
    if length < len(classes):
        raise ValueError(f'Password length must be at least {len(classes)}')

    alphabet = ''.join(classes)
    chars = [secrets.choice(charset) for charset in classes]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(classes)))
    _system_random.shuffle(chars)
    return ''.join(chars)


# Module-level hasher instance
_default_hasher = SecurePasswordHasher()


def hash_password(password: str) -> str:
    """Convenience function to hash a password."""
    return _default_hasher.hash_password(password)


def verify_password(password: str, hash_str: str) -> bool:
    """Convenience function to verify a password."""
    return _default_hasher.verify_password(password, hash_str)


if __name__ == "__main__":
    print("Password Policy Check")
    print("=" * 60)
    for candidate in ("Password1!", "Str0ngP@ssword2024", generate_secure_password()):
        result = evaluate_password_strength(candidate)
        status = "✓" if result.is_valid else "✗"
        print(f"  {status} score={result.score}  {result.message}")
