import pytest

from fittrack_client.config import DEFAULT_HEALTH_PROBE_PATHS, load_settings
from fittrack_client.errors import ConfigurationError


def test_defaults(make_settings):
    settings = make_settings()

    assert settings.api_base_url == "http://api.test/api/v1"
    assert settings.backend_url == "http://backend.test"
    assert settings.SESSION_TIMEOUT_SECONDS == 1800
    assert settings.SESSION_CHECK_INTERVAL_SECONDS == 60
    assert settings.HEALTH_CACHE_TTL_SECONDS == 5
    assert settings.HEALTH_PROBE_PATHS == DEFAULT_HEALTH_PROBE_PATHS
    assert settings.ALLOW_OFFLINE_DEMO_LOGIN is False


def test_missing_api_base_url_is_a_configuration_error(make_settings, monkeypatch):
    monkeypatch.delenv("API_BASE_URL", raising=False)

    with pytest.raises(ConfigurationError):
        load_settings(_env_file=None)


def test_backend_url_requires_anon_key(make_settings):
    with pytest.raises(ConfigurationError, match="BACKEND_ANON_KEY"):
        make_settings(BACKEND_ANON_KEY=None)


def test_backend_is_optional(make_settings):
    settings = make_settings(BACKEND_URL=None, BACKEND_ANON_KEY=None)

    assert settings.backend_url is None


def test_timeouts_must_be_positive(make_settings):
    with pytest.raises(ConfigurationError, match="SESSION_TIMEOUT_SECONDS"):
        make_settings(SESSION_TIMEOUT_SECONDS=0)


def test_probe_paths_from_comma_separated_env(make_settings, monkeypatch):
    monkeypatch.setenv("HEALTH_PROBE_PATHS", " /health/ping, /status ,/favicon.ico,")

    settings = make_settings()

    assert settings.HEALTH_PROBE_PATHS == ["/health/ping", "/status", "/favicon.ico"]


def test_empty_probe_paths_rejected(make_settings):
    with pytest.raises(ConfigurationError):
        make_settings(HEALTH_PROBE_PATHS="")


def test_settings_are_read_from_environment(make_settings, monkeypatch):
    monkeypatch.setenv("SESSION_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("ALLOW_OFFLINE_DEMO_LOGIN", "true")

    settings = make_settings()

    assert settings.SESSION_TIMEOUT_SECONDS == 90
    assert settings.ALLOW_OFFLINE_DEMO_LOGIN is True
