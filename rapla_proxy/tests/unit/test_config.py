import pytest

from rapla_proxy.core.config import Settings, load_settings, parse_args

ENV_VARS = (
    "RAPLA_HOST", "RAPLA_PORT", "RAPLA_CACHE_ENABLED", "RAPLA_CACHE_TTL",
    "RAPLA_CACHE_MAX_SIZE", "RAPLA_UPSTREAM_TIMEOUT", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, mocker):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's local .env out of the tests
    mocker.patch("rapla_proxy.core.config.load_dotenv")
    return monkeypatch


def test_load_settings_defaults(clean_env):
    assert load_settings() == Settings()


def test_load_settings_from_environment(clean_env):
    clean_env.setenv("RAPLA_HOST", "0.0.0.0")
    clean_env.setenv("RAPLA_PORT", "9000")
    clean_env.setenv("RAPLA_CACHE_ENABLED", "true")
    clean_env.setenv("RAPLA_CACHE_TTL", "600")
    clean_env.setenv("RAPLA_CACHE_MAX_SIZE", "5")
    clean_env.setenv("RAPLA_UPSTREAM_TIMEOUT", "2.5")
    clean_env.setenv("LOG_LEVEL", "debug")

    assert load_settings() == Settings(
        host="0.0.0.0", port=9000, cache_enabled=True, cache_ttl=600,
        cache_max_size=5, upstream_timeout=2.5, log_level="DEBUG",
    )


def test_invalid_number_in_environment(clean_env):
    clean_env.setenv("RAPLA_PORT", "eighty")
    with pytest.raises(ValueError):
        load_settings()


def test_parse_args_overrides_base():
    base = Settings(cache_enabled=True, cache_ttl=60)
    settings = parse_args(["--port", "8081", "--no-cache", "--log-level", "warning"], base=base)

    assert settings.port == 8081
    assert settings.cache_enabled is False
    assert settings.cache_ttl == 60
    assert settings.log_level == "WARNING"


def test_parse_args_without_flags_keeps_base():
    base = Settings(host="0.0.0.0", cache_max_size=0)
    assert parse_args([], base=base) == base


def test_parse_args_enables_cache():
    settings = parse_args(["--cache", "--cache-ttl", "120", "--cache-max-size", "10"], base=Settings())
    assert (settings.cache_enabled, settings.cache_ttl, settings.cache_max_size) == (True, 120, 10)
