"""
Unit tests for credential management.

Tests:
- Registration and the acceptance pipeline (strength, breach)
- Authentication and legacy credential upgrades
- Password change and admin reset
"""

import bcrypt
import httpx
import pytest

from raceauth.auth.accounts import CredentialManager, CredentialRecord, InMemoryAccountStore
from raceauth.auth.breach import BreachChecker, sha1_prefix_suffix
from raceauth.errors import (
    AccountExistsError,
    AccountNotFoundError,
    BreachedPasswordError,
    InvalidCredentialsError,
    WeakPasswordError,
)
from raceauth.integration.event_logger import EventType

from .conftest import OTHER_STRONG_PASSWORD, STRONG_PASSWORD


EMAIL = 'driver@example.com'


def breach_checker_reporting(password, count):
    _, suffix = sha1_prefix_suffix(password)
    body = f'{suffix}:{count}'
    return BreachChecker(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=body)))


class TestAccountStore:

    def test_case_insensitive(self):
        store = InMemoryAccountStore()
        store.upsert(CredentialRecord('Driver@Example.com', 'x'))
        assert store.find_by_email('DRIVER@example.COM').email == EMAIL
        assert len(store) == 1


class TestRegistration:

    def test_register_hashes_password(self, credentials, account_store):
        record = credentials.register('  Driver@Example.com ', STRONG_PASSWORD)
        assert record.email == EMAIL
        assert record.password_hash.startswith('$argon2id$')
        assert STRONG_PASSWORD not in record.password_hash
        assert account_store.find_by_email(EMAIL) == record

    def test_duplicate_rejected(self, credentials):
        credentials.register(EMAIL, STRONG_PASSWORD)
        with pytest.raises(AccountExistsError):
            credentials.register(EMAIL.upper(), OTHER_STRONG_PASSWORD)

    def test_weak_password_rejected(self, credentials, event_logger):
        with pytest.raises(WeakPasswordError) as exc_info:
            credentials.register(EMAIL, 'Password1!')
        assert 'at least 12 characters' in str(exc_info.value)
        rejected = event_logger.get_events_by_type(EventType.PASSWORD_REJECTED)
        assert rejected[0].details['reason'] == 'weak'

    def test_weak_password_is_value_error(self, credentials):
        with pytest.raises(ValueError):
            credentials.accept_new_password('short')

    def test_breached_password_rejected(self, account_store, fast_hasher):
        manager = CredentialManager(account_store, hasher=fast_hasher,
                                    breach_checker=breach_checker_reporting(STRONG_PASSWORD, 99))
        with pytest.raises(BreachedPasswordError) as exc_info:
            manager.register(EMAIL, STRONG_PASSWORD)
        assert exc_info.value.count == 99
        assert account_store.find_by_email(EMAIL) is None

    def test_breach_outage_does_not_block(self, account_store, fast_hasher):
        def handler(request):
            raise httpx.ConnectError('down', request=request)

        manager = CredentialManager(account_store, hasher=fast_hasher,
                                    breach_checker=BreachChecker(transport=httpx.MockTransport(handler)))
        manager.register(EMAIL, STRONG_PASSWORD)
        assert manager.authenticate(EMAIL, STRONG_PASSWORD)


class TestAuthentication:

    def test_authenticate(self, credentials, event_logger):
        credentials.register(EMAIL, STRONG_PASSWORD)
        assert credentials.authenticate(EMAIL, STRONG_PASSWORD)
        assert not credentials.authenticate(EMAIL, OTHER_STRONG_PASSWORD)
        assert not credentials.authenticate('nobody@example.com', STRONG_PASSWORD)
        assert len(event_logger.get_events_by_type(EventType.LOGIN_FAILED)) == 2

    def test_legacy_plaintext_upgraded(self, credentials, account_store):
        account_store.upsert(CredentialRecord(EMAIL, 'old-plain-password'))
        assert not credentials.authenticate(EMAIL, 'wrong')
        assert account_store.find_by_email(EMAIL).password_hash == 'old-plain-password'

        assert credentials.authenticate(EMAIL, 'old-plain-password')
        upgraded = account_store.find_by_email(EMAIL).password_hash
        assert upgraded.startswith('$argon2id$')
        assert credentials.authenticate(EMAIL, 'old-plain-password')

    def test_legacy_bcrypt_upgraded(self, credentials, account_store, event_logger):
        legacy = bcrypt.hashpw(STRONG_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
        account_store.upsert(CredentialRecord(EMAIL, legacy))

        assert credentials.authenticate(EMAIL, STRONG_PASSWORD)
        assert account_store.find_by_email(EMAIL).password_hash.startswith('$argon2id$')
        assert event_logger.get_events_by_type(EventType.PASSWORD_REHASHED)

    def test_empty_stored_value_never_matches(self, credentials, account_store):
        account_store.upsert(CredentialRecord(EMAIL, ''))
        assert not credentials.authenticate(EMAIL, '')


class TestPasswordChange:

    def test_change_password(self, credentials, event_logger):
        credentials.register(EMAIL, STRONG_PASSWORD)
        credentials.change_password(EMAIL, STRONG_PASSWORD, OTHER_STRONG_PASSWORD, OTHER_STRONG_PASSWORD)
        assert credentials.authenticate(EMAIL, OTHER_STRONG_PASSWORD)
        assert not credentials.authenticate(EMAIL, STRONG_PASSWORD)
        assert event_logger.get_events_by_type(EventType.PASSWORD_CHANGED)

    def test_wrong_current_password(self, credentials):
        credentials.register(EMAIL, STRONG_PASSWORD)
        with pytest.raises(InvalidCredentialsError, match='Current password is incorrect'):
            credentials.change_password(EMAIL, 'Wr0ng-P@ssword!', OTHER_STRONG_PASSWORD)

    def test_confirmation_mismatch(self, credentials):
        credentials.register(EMAIL, STRONG_PASSWORD)
        with pytest.raises(WeakPasswordError, match='Passwords do not match'):
            credentials.change_password(EMAIL, STRONG_PASSWORD, OTHER_STRONG_PASSWORD, 'different')

    def test_reuse_rejected(self, credentials):
        credentials.register(EMAIL, STRONG_PASSWORD)
        with pytest.raises(WeakPasswordError, match='must be different'):
            credentials.change_password(EMAIL, STRONG_PASSWORD, STRONG_PASSWORD)

    def test_unknown_account(self, credentials):
        with pytest.raises(AccountNotFoundError):
            credentials.change_password(EMAIL, STRONG_PASSWORD, OTHER_STRONG_PASSWORD)


class TestResets:

    def test_reset_password(self, credentials):
        credentials.register(EMAIL, STRONG_PASSWORD)
        credentials.reset_password(EMAIL, OTHER_STRONG_PASSWORD)
        assert credentials.authenticate(EMAIL, OTHER_STRONG_PASSWORD)

    def test_reset_unknown_account(self, credentials):
        with pytest.raises(AccountNotFoundError):
            credentials.reset_password(EMAIL, OTHER_STRONG_PASSWORD)

    def test_admin_reset(self, credentials, event_logger):
        credentials.register(EMAIL, STRONG_PASSWORD)
        generated = credentials.admin_reset_password(EMAIL)
        assert len(generated) == 16
        assert credentials.authenticate(EMAIL, generated)
        event = event_logger.get_events_by_type(EventType.PASSWORD_RESET)[-1]
        assert event.details['initiated_by'] == 'admin'
        assert generated not in event_logger.export_log()

    def test_admin_reset_minimum_length(self, credentials):
        credentials.register(EMAIL, STRONG_PASSWORD)
        with pytest.raises(ValueError):
            credentials.admin_reset_password(EMAIL, length=8)
