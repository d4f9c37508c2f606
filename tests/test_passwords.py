"""
Unit tests for password handling.

Tests:
- Argon2id hashing and verification
- Legacy bcrypt verification and rehash detection
- Strength evaluation (rule order, scoring)
- Secure password generation
"""

import bcrypt
import pytest

from raceauth.auth.passwords import (
    SecurePasswordHasher,
    evaluate_password_strength,
    generate_secure_password,
    hash_password,
    is_password_hash,
    verify_password,
    STRENGTH_OK_MESSAGE,
    GENERATOR_SYMBOLS,
)

from .conftest import STRONG_PASSWORD


class TestPasswordHashing:
    """Unit tests for Argon2id hashing."""

    @pytest.mark.parametrize('password', [
        STRONG_PASSWORD,
        'short',
        'pässwörd-ünïcode-✓',
        ' leading and trailing spaces ',
    ])
    def test_verify_hash_roundtrip(self, fast_hasher, password):
        """verify(p, hash(p)) holds for any non-empty password."""
        assert fast_hasher.verify_password(password, fast_hasher.hash_password(password))

    def test_same_password_different_hashes(self, fast_hasher):
        """Same password should hash differently (random salt)."""
        assert fast_hasher.hash_password(STRONG_PASSWORD) != fast_hasher.hash_password(STRONG_PASSWORD)

    def test_hash_is_argon2id(self, fast_hasher):
        assert fast_hasher.hash_password(STRONG_PASSWORD).startswith('$argon2id$')

    def test_wrong_password_fails(self, fast_hasher):
        stored = fast_hasher.hash_password(STRONG_PASSWORD)
        assert not fast_hasher.verify_password(STRONG_PASSWORD + 'x', stored)

    def test_empty_password_rejected(self, fast_hasher):
        with pytest.raises(ValueError):
            fast_hasher.hash_password('')

    @pytest.mark.parametrize('stored', [
        None,
        '',
        'not-a-hash',
        '$argon2id$v=19$m=1024,t=1,p=1$garbage',
        '$2b$12$tooShort',
    ])
    def test_malformed_hash_is_mismatch(self, fast_hasher, stored):
        """Malformed hashes fail verification instead of raising."""
        assert fast_hasher.verify_password(STRONG_PASSWORD, stored) is False

    def test_module_level_helpers(self):
        """Convenience functions use the default Argon2id parameters."""
        stored = hash_password(STRONG_PASSWORD)
        assert stored.startswith('$argon2id$v=19$m=65536,t=3,p=4$')
        assert verify_password(STRONG_PASSWORD, stored)

    def test_needs_rehash_on_parameter_change(self, fast_hasher):
        stored = fast_hasher.hash_password(STRONG_PASSWORD)
        assert not fast_hasher.needs_rehash(stored)
        stronger = SecurePasswordHasher(time_cost=2, memory_cost=1024, parallelism=1)
        assert stronger.needs_rehash(stored)


class TestLegacyBcrypt:
    """Hashes carried over from the bcrypt deployment."""

    def test_verify_legacy_bcrypt(self, fast_hasher):
        legacy = bcrypt.hashpw(STRONG_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
        assert fast_hasher.verify_password(STRONG_PASSWORD, legacy)
        assert not fast_hasher.verify_password('Wr0ng-P@ssword-2024', legacy)

    def test_bcrypt_always_needs_rehash(self, fast_hasher):
        legacy = bcrypt.hashpw(b'whatever', bcrypt.gensalt(rounds=4)).decode()
        assert fast_hasher.needs_rehash(legacy)

    def test_bcrypt_long_password_truncated(self, fast_hasher):
        """bcrypt only considered the first 72 bytes."""
        long_password = 'A1!' + 'x' * 100
        legacy = bcrypt.hashpw(long_password.encode()[:72], bcrypt.gensalt(rounds=4)).decode()
        assert fast_hasher.verify_password(long_password, legacy)

    def test_is_password_hash(self, fast_hasher):
        assert is_password_hash(fast_hasher.hash_password(STRONG_PASSWORD))
        assert is_password_hash('$2a$12$' + 'a' * 53)
        assert not is_password_hash('plaintext-password')
        assert not is_password_hash(None)


class TestPasswordStrength:
    """Strength evaluator rules."""

    def test_short_password_rejected_with_length_message(self):
        result = evaluate_password_strength('Password1!')
        assert result.is_valid is False
        assert 'at least 12 characters' in result.message

    def test_strong_password(self):
        result = evaluate_password_strength(STRONG_PASSWORD)
        assert result.is_valid is True
        assert result.message == STRENGTH_OK_MESSAGE
        assert result.score >= 7

    @pytest.mark.parametrize('password', ['', 'a', 'Ab1!', 'Abcdefgh1!x'])
    def test_under_twelve_never_valid(self, password):
        assert evaluate_password_strength(password).is_valid is False

    @pytest.mark.parametrize('password,expected', [
        ('ABCDEFGH123!', 'lowercase'),
        ('abcdefgh123!', 'uppercase'),
        ('Abcdefghijk!', 'number'),
        ('Abcdefghijk1', 'special character'),
        ('ÉÉÉÉÉéééééé٣!', 'lowercase'),
        ('ÉÉÉÉÉabcdef1!', 'uppercase'),
        ('Abcdefghijk٣!', 'number'),
    ])
    def test_missing_required_class(self, password, expected):
        """Removing any required class flips validity, naming that class."""
        result = evaluate_password_strength(password)
        assert result.is_valid is False
        assert expected in result.message

    def test_first_issue_wins(self):
        """Only the first unmet rule is reported."""
        result = evaluate_password_strength('abc')
        assert 'at least 12 characters' in result.message

    def test_minimal_valid_password_score(self):
        result = evaluate_password_strength('Abcdefgh123!')
        assert result.is_valid is True
        assert result.score == 6

    def test_bonus_points(self):
        result = evaluate_password_strength('Abcdefgh123!@xyzw')
        assert result.score == 8


class TestPasswordGenerator:
    """Secure password generation."""

    @pytest.mark.parametrize('length', [12, 13, 16, 24, 64])
    def test_generated_passwords_pass_policy(self, length):
        for _ in range(25):
            password = generate_secure_password(length)
            assert len(password) == length
            assert evaluate_password_strength(password).is_valid

    def test_contains_every_class(self):
        password = generate_secure_password(4)
        assert any(c.islower() for c in password)
        assert any(c.isupper() for c in password)
        assert any(c.isdigit() for c in password)
        assert any(c in GENERATOR_SYMBOLS for c in password)

    def test_too_short_rejected(self):
        with pytest.raises(ValueError):
            generate_secure_password(3)

    def test_passwords_are_unique(self):
        assert len({generate_secure_password() for _ in range(50)}) == 50
