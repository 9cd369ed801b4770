"""
Configuration validation tests.
"""

import pytest
from pydantic import ValidationError

from signalgate.config import DEV_TOKEN_SECRET, Environment, RelayBackend, Settings

STRONG_SECRET = "x" * 48


def _settings(**overrides) -> Settings:
    values = {
        "env": Environment.DEVELOPMENT,
        "allow_insecure_dev": False,
        "database_url": "sqlite+aiosqlite:///./test.db",
    }
    values.update(overrides)
    return Settings(**values)


def test_defaults():
    config = _settings()

    assert config.relay_backend == RelayBackend.MEMORY
    assert config.relay_max_messages == 100
    assert config.relay_max_payload_bytes == 65536
    assert config.relay_message_ttl_seconds == 600
    assert config.relay_sweep_interval_seconds == 300
    assert config.session_token_ttl_seconds == 600
    assert config.stun_urls == ["stun:stun.l.google.com:19302"]
    assert config.turn_urls == []


@pytest.mark.parametrize("env", [Environment.STAGING, Environment.PRODUCTION])
def test_deployed_environments_require_api_key(env):
    with pytest.raises(ValidationError, match="api_key is required"):
        _settings(env=env, session_token_secret=STRONG_SECRET)


@pytest.mark.parametrize("secret", [DEV_TOKEN_SECRET, "short-secret"])
def test_production_requires_strong_token_secret(secret):
    with pytest.raises(ValidationError, match="session_token_secret"):
        _settings(env=Environment.PRODUCTION, api_key="key", session_token_secret=secret)


def test_production_refuses_insecure_dev():
    with pytest.raises(ValidationError, match="allow_insecure_dev"):
        _settings(
            env=Environment.PRODUCTION,
            api_key="key",
            session_token_secret=STRONG_SECRET,
            allow_insecure_dev=True,
        )


def test_production_with_key_and_secret_is_valid():
    config = _settings(
        env=Environment.PRODUCTION, api_key="key", session_token_secret=STRONG_SECRET
    )

    assert config.rate_limit_active is True


def test_redis_relay_requires_redis_url():
    with pytest.raises(ValidationError, match="redis_url is required"):
        _settings(relay_backend=RelayBackend.REDIS)

    config = _settings(relay_backend=RelayBackend.REDIS, redis_url="redis://localhost:6379/0")
    assert config.redis_url == "redis://localhost:6379/0"


def test_redis_url_scheme_is_checked():
    with pytest.raises(ValidationError):
        _settings(redis_url="http://localhost:6379")


def test_database_url_scheme_is_checked():
    with pytest.raises(ValidationError, match="database_url"):
        _settings(database_url="mysql://localhost/signalgate")


@pytest.mark.parametrize(
    "value,expected",
    [
        ("turn:a.example:3478, turn:b.example:3478", ["turn:a.example:3478", "turn:b.example:3478"]),
        ('["turn:a.example:3478"]', ["turn:a.example:3478"]),
        ("", []),
    ],
)
def test_url_lists_accept_csv_or_json(value, expected):
    assert _settings(turn_urls=value).turn_urls == expected


def test_url_lists_read_from_environment(monkeypatch):
    monkeypatch.setenv("SIGNALGATE_STUN_URLS", "stun:one.example:3478,stun:two.example:3478")

    config = _settings()

    assert config.stun_urls == ["stun:one.example:3478", "stun:two.example:3478"]


def test_token_secret_accepts_legacy_env_name(monkeypatch):
    monkeypatch.delenv("SIGNALGATE_SESSION_TOKEN_SECRET", raising=False)
    monkeypatch.setenv("RC_JWT_SECRET", STRONG_SECRET)

    assert Settings().session_token_secret == STRONG_SECRET
