import pytest
from pydantic import ValidationError

from conftest import TEST_SECRET
from presence_registry.registry.app.core.config import Settings, get_socket_io_config


def test_defaults(settings):
    assert settings.REGISTRY_TABLE_NAME == "web_socket_adapter_table"
    assert settings.CONNECTION_TTL_MINUTES == 30
    assert settings.ACTIVITY_RETENTION_MONTHS == 6


def test_short_jwt_secret_rejected():
    with pytest.raises(ValidationError):
        Settings(JWT_SECRET_KEY="short", _env_file=None)


def test_unknown_environment_rejected():
    with pytest.raises(ValidationError):
        Settings(JWT_SECRET_KEY=TEST_SECRET, ENV="qa", _env_file=None)


def test_production_requires_https_origins():
    with pytest.raises(ValidationError):
        Settings(
            JWT_SECRET_KEY=TEST_SECRET,
            ENV="production",
            CORS_ORIGINS=["http://example.com"],
            _env_file=None,
        )


def test_socket_io_config(settings):
    config = get_socket_io_config(settings)

    assert config["async_mode"] == "asgi"
    assert config["cors_allowed_origins"] == settings.CORS_ORIGINS
