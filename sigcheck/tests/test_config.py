import pytest
from pydantic import ValidationError

from sigcheck.app.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.max_document_size_mb == 25
    assert settings.max_part_size_bytes == 25 * 1024 * 1024
    assert settings.tolerate_malformed_signature_parts is False
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SIGCHECK_MAX_DOCUMENT_SIZE_MB", "5")
    monkeypatch.setenv("SIGCHECK_TOLERATE_MALFORMED_SIGNATURE_PARTS", "true")
    monkeypatch.setenv("SIGCHECK_LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.max_document_size_bytes == 5 * 1024 * 1024
    assert settings.tolerate_malformed_signature_parts is True
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_document_size_mb": 0},
        {"max_part_size_mb": 101},
        {"log_level": "CHATTY"},
    ],
)
def test_invalid_configuration_fails_fast(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_settings_are_immutable():
    settings = Settings(_env_file=None)

    with pytest.raises(ValidationError):
        settings.max_document_size_mb = 10
