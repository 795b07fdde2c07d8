"""Tests for config.py: KeychainSettingsSource and Settings validation."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS

# Environment variables that would interfere with Settings defaults if
# set in the test runner's shell.  We clear them for isolation.
_ENV_VARS_TO_CLEAR = {
    "DATABASE_URL",
    "ENVIRONMENT",
    "DEBUG",
    "LOG_LEVEL",
    "FASTEN_BASE_URL",
    "FASTEN_ALLOW_UNSIGNED_WEBHOOKS",
    "EHI_INGEST_BATCH_SIZE",
    "EHI_INGEST_TIMEOUT_SECONDS",
    *CREDENTIAL_KEYS,
}


def _clean_env():
    """Return a dict suitable for ``os.environ`` patching that removes
    any variables the Settings class reads."""
    return {k: v for k, v in os.environ.items() if k not in _ENV_VARS_TO_CLEAR}


class TestKeychainSettingsSource:
    """Test the KeychainSettingsSource pydantic-settings source."""

    def test_keychain_value_overrides_default(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "public_test_kc" if key == "FASTEN_PUBLIC_ID" else None
            )
            s = Settings(_env_file=None)
            assert s.FASTEN_PUBLIC_ID == "public_test_kc"
            assert s.FASTEN_PRIVATE_KEY == ""

    def test_init_value_overrides_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value="keychain-value"),
        ):
            s = Settings(_env_file=None, FASTEN_WEBHOOK_SECRET="init-secret")
            assert s.FASTEN_WEBHOOK_SECRET == "init-secret"

    def test_non_credential_fields_skip_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.return_value = "should-not-be-used"
            s = Settings(_env_file=None)
            assert s.DATABASE_URL == "sqlite:///./clearcare.db"
            assert s.FASTEN_BASE_URL == ""
            called_keys = {call.args[0] for call in mock_get.call_args_list}
            assert called_keys <= CREDENTIAL_KEYS

    def test_keychain_overrides_env_var(self):
        env = _clean_env()
        env["FASTEN_PRIVATE_KEY"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "from-keychain" if key == "FASTEN_PRIVATE_KEY" else None
            )
            s = Settings(_env_file=None)
            assert s.FASTEN_PRIVATE_KEY == "from-keychain"

    def test_source_is_second_in_priority_chain(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        source_types = [type(s) for s in sources]
        assert source_types.index(KeychainSettingsSource) == 1


class TestSettingsValidation:
    """Defaults and validators on Settings."""

    def _settings(self, **overrides) -> Settings:
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value=None),
        ):
            return Settings(_env_file=None, **overrides)

    def test_ingest_defaults(self):
        s = self._settings()
        assert s.EHI_INGEST_BATCH_SIZE == 80
        assert s.EHI_INGEST_TIMEOUT_SECONDS == 30.0
        assert s.FASTEN_HTTP_TIMEOUT_SECONDS == 30.0
        assert s.FASTEN_ALLOW_UNSIGNED_WEBHOOKS is False

    def test_fasten_values_are_trimmed(self):
        s = self._settings(
            FASTEN_PUBLIC_ID="  public_test_1 \n",
            FASTEN_BASE_URL=" https://api.example.com/v1/ ",
        )
        assert s.FASTEN_PUBLIC_ID == "public_test_1"
        assert s.FASTEN_BASE_URL == "https://api.example.com/v1/"

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValidationError):
            self._settings(EHI_INGEST_BATCH_SIZE=0)

    def test_log_level_is_normalized(self):
        assert self._settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_rejects_unknown_log_level(self):
        with pytest.raises(ValidationError):
            self._settings(LOG_LEVEL="verbose")
