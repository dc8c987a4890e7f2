"""Tests for configuration loading and the application factory."""
from datetime import timedelta

import pytest

from authcenter import create_app
from utils.config import get_app_config
from utils.exceptions import ConfigurationError


@pytest.fixture
def fresh_config():
    get_app_config.cache_clear()
    yield
    get_app_config.cache_clear()


def test_defaults(fresh_config, monkeypatch):
    monkeypatch.delenv('LOCKOUT_POLICY', raising=False)
    monkeypatch.delenv('PROPAGATION_MODE', raising=False)
    config = get_app_config()

    assert config.jwt.ttl == 300
    assert config.jwt.refresh_ttl == 1209600
    assert config.jwt.refresh_rotation is False
    assert config.lockout_policy == 'standard'
    assert config.oauth_validate_checks_blacklist is True
    assert config.propagation_mode == 'celery'


def test_environment_overrides(fresh_config, monkeypatch):
    monkeypatch.setenv('JWT_TTL', '120')
    monkeypatch.setenv('LOCKOUT_POLICY', 'strict')
    monkeypatch.setenv('REFRESH_TOKEN_ROTATION', 'true')
    monkeypatch.setenv('ALLOWED_ORIGINS', 'https://a.example, https://b.example')

    config = get_app_config()

    assert config.jwt.ttl == 120
    assert config.jwt.refresh_rotation is True
    assert config.lockout_policy == 'strict'
    assert config.allowed_origins == ('https://a.example', 'https://b.example')


def test_unknown_lockout_policy(fresh_config, monkeypatch):
    monkeypatch.setenv('LOCKOUT_POLICY', 'lenient')
    with pytest.raises(ValueError):
        get_app_config()


def test_factory_maps_jwt_settings(app):
    assert app.config['JWT_ALGORITHM'] == 'RS256'
    assert app.config['JWT_ACCESS_TOKEN_EXPIRES'] == timedelta(seconds=300)
    assert app.config['JWT_DECODE_ISSUER'] == app.config['JWT_ENCODE_ISSUER']
    assert app.config['JWT_DECODE_LEEWAY'] == 10


def test_missing_signing_keys_fail_fast(tmp_path):
    with pytest.raises(ConfigurationError):
        create_app({
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'JWT_PRIVATE_KEY_PATH': str(tmp_path / 'missing.pem'),
            'JWT_PUBLIC_KEY_PATH': str(tmp_path / 'missing.pub'),
        })
