"""
Unit tests for configuration loading.
"""

import pytest

from raceauth.config import AuthSettings, parse_key_list
from raceauth.errors import ConfigurationError


ENV_NAMES = [
    'RACEAUTH_APP_NAME',
    'RACEAUTH_OTP_EXPIRY_MINUTES',
    'RACEAUTH_OTP_MAX_ATTEMPTS',
    'RACEAUTH_OTP_HOURLY_LIMIT',
    'RACEAUTH_OTP_RATE_WINDOW_SECONDS',
    'RACEAUTH_OTP_MIN_SPACING_SECONDS',
    'RACEAUTH_OTP_HISTORY_SIZE',
    'RACEAUTH_OTP_SWEEP_INTERVAL_SECONDS',
    'RACEAUTH_BREACH_API_URL',
    'RACEAUTH_BREACH_TIMEOUT_SECONDS',
    'RACEAUTH_BREACH_USER_AGENT',
    'RACEAUTH_OTP_KEYS',
    'RACEAUTH_OTP_ACTIVE_KEY',
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    empty = tmp_path / 'empty.env'
    empty.write_text('')
    return str(empty)


class TestDefaults:

    def test_defaults(self):
        settings = AuthSettings()
        assert settings.app_name == 'VIP SIM RACING'
        assert settings.otp_code_length == 6
        assert settings.otp_expiry_minutes == 10
        assert settings.otp_max_attempts == 5
        assert settings.otp_hourly_limit == 3
        assert settings.otp_min_spacing_seconds == 120
        assert settings.otp_history_size == 10
        assert settings.otp_sweep_interval_seconds == 300
        assert settings.breach_api_url == 'https://api.pwnedpasswords.com/range/'

    @pytest.mark.parametrize('overrides', [
        {'otp_code_length': 3},
        {'otp_max_attempts': 0},
        {'otp_hourly_limit': 0},
        {'otp_hourly_limit': 5, 'otp_history_size': 4},
        {'breach_timeout_seconds': 0},
        {'otp_rate_window_seconds': 0},
        {'otp_sweep_interval_seconds': 0},
        {'otp_keys': {'k1': 'x' * 32}, 'otp_active_key_id': 'k2'},
    ])
    def test_invalid_settings(self, overrides):
        with pytest.raises(ConfigurationError):
            AuthSettings(**overrides)


class TestKeyList:

    def test_parse(self):
        assert parse_key_list('a:one, b:two:with:colons') == {'a': 'one', 'b': 'two:with:colons'}

    def test_empty(self):
        assert parse_key_list('') == {}

    @pytest.mark.parametrize('raw', ['nocolon', ':secret', 'id:'])
    def test_malformed(self, raw):
        with pytest.raises(ConfigurationError):
            parse_key_list(raw)


class TestFromEnv:

    def test_environment_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv('RACEAUTH_OTP_EXPIRY_MINUTES', '15')
        monkeypatch.setenv('RACEAUTH_BREACH_TIMEOUT_SECONDS', '2.5')
        monkeypatch.setenv('RACEAUTH_OTP_RATE_WINDOW_SECONDS', '1800')
        monkeypatch.setenv('RACEAUTH_OTP_KEYS', 'old:' + 'a' * 20 + ',new:' + 'b' * 20)
        monkeypatch.setenv('RACEAUTH_OTP_ACTIVE_KEY', 'new')

        settings = AuthSettings.from_env(clean_env)
        assert settings.otp_expiry_minutes == 15
        assert settings.breach_timeout_seconds == 2.5
        assert settings.otp_rate_window_seconds == 1800
        assert settings.otp_active_key_id == 'new'
        assert set(settings.otp_keys) == {'old', 'new'}

    def test_first_key_active_by_default(self, clean_env, monkeypatch):
        monkeypatch.setenv('RACEAUTH_OTP_KEYS', 'first:' + 'a' * 20 + ',second:' + 'b' * 20)
        assert AuthSettings.from_env(clean_env).otp_active_key_id == 'first'

    def test_bad_integer(self, clean_env, monkeypatch):
        monkeypatch.setenv('RACEAUTH_OTP_MAX_ATTEMPTS', 'five')
        with pytest.raises(ConfigurationError):
            AuthSettings.from_env(clean_env)

    def test_dotenv_file(self, clean_env, monkeypatch, tmp_path):
        dotenv = tmp_path / '.env'
        dotenv.write_text('RACEAUTH_APP_NAME="Pit Lane"\nRACEAUTH_OTP_HOURLY_LIMIT=4\n')
        # load_dotenv writes into os.environ; register the names so teardown removes them
        for name in ('RACEAUTH_APP_NAME', 'RACEAUTH_OTP_HOURLY_LIMIT'):
            monkeypatch.setenv(name, '')
            monkeypatch.delenv(name)

        settings = AuthSettings.from_env(str(dotenv))
        assert settings.app_name == 'Pit Lane'
        assert settings.otp_hourly_limit == 4
