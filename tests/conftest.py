"""
Shared fixtures.

Time is driven by FakeClock, Argon2 runs with minimal parameters and email
delivery is captured in memory, so the suite is fast and deterministic.
"""

import pytest

from raceauth.auth.accounts import CredentialManager, InMemoryAccountStore
from raceauth.auth.passwords import SecurePasswordHasher
from raceauth.config import AuthSettings
from raceauth.errors import DeliveryError
from raceauth.integration.event_logger import EventLogger
from raceauth.integration.password_reset import PasswordResetFlow
from raceauth.otp.delivery import EmailSender
from raceauth.otp.issuer import OTPIssuer
from raceauth.otp.repository import InMemoryIssuanceHistory, InMemoryOTPRepository, KeyedLocks
from raceauth.otp.sealing import OTPCipher, StaticKeyProvider
from raceauth.otp.validator import OTPValidator


START_TIME = 1_700_000_000.0

TEST_KEYS = {
    'k1': 'test-sealing-secret-number-one',
    'k2': 'test-sealing-secret-number-two',
}

STRONG_PASSWORD = 'Str0ngP@ssword2024'
OTHER_STRONG_PASSWORD = 'An0ther#Secure!Pass'


class FakeClock:
    """Callable epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> None:
        self.now += seconds + minutes * 60


class RecordingSender(EmailSender):
    """Captures sent codes instead of emailing them."""

    def __init__(self):
        self.outbox = []

    def send_otp(self, email, code, expiry_minutes):
        self.outbox.append((email, code, expiry_minutes))

    @property
    def last_code(self):
        return self.outbox[-1][1]


class FailingSender(EmailSender):
    def send_otp(self, email, code, expiry_minutes):
        raise DeliveryError('Email delivery failed. Please try again.')


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return AuthSettings(otp_keys=dict(TEST_KEYS), otp_active_key_id='k1')


@pytest.fixture(scope='session')
def fast_hasher():
    return SecurePasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def event_logger(clock):
    return EventLogger(clock=clock)


@pytest.fixture
def cipher():
    return OTPCipher(StaticKeyProvider(dict(TEST_KEYS), 'k1'))


@pytest.fixture
def otp_repo():
    return InMemoryOTPRepository()


@pytest.fixture
def history(settings):
    return InMemoryIssuanceHistory(settings.otp_history_size)


@pytest.fixture
def locks():
    return KeyedLocks()


@pytest.fixture
def issuer(otp_repo, history, cipher, settings, clock, event_logger, locks):
    return OTPIssuer(otp_repo, history, cipher, settings=settings, clock=clock,
                     event_logger=event_logger, locks=locks)


@pytest.fixture
def validator(otp_repo, cipher, settings, clock, event_logger, locks):
    return OTPValidator(otp_repo, cipher, settings=settings, clock=clock,
                        event_logger=event_logger, locks=locks)


@pytest.fixture
def account_store():
    return InMemoryAccountStore()


@pytest.fixture
def credentials(account_store, fast_hasher, event_logger):
    return CredentialManager(account_store, hasher=fast_hasher, event_logger=event_logger)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def reset_flow(issuer, validator, sender, credentials, event_logger, clock):
    return PasswordResetFlow(issuer, validator, sender, credentials,
                             event_logger=event_logger, clock=clock)
