from datetime import timedelta

import jwt
import pytest

from school_rbac.config import ConfigError, Settings
from school_rbac.models import UserRole
from school_rbac.security import InvalidToken, TokenService, hash_password, verify_password


def test_password_hash_roundtrip():
    hashed = hash_password("s3cret", rounds=4)
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_rejects_garbage_hash():
    assert not verify_password("s3cret", "not-a-bcrypt-hash")


def test_access_token_payload(settings):
    tokens = TokenService(settings)
    payload = tokens.verify_access(tokens.issue_access_token(7, UserRole.TEACHER))
    assert payload["id"] == 7
    assert payload["role"] == "teacher"
    assert payload["exp"] - payload["iat"] == 2 * 60 * 60


def test_refresh_token_lifetime_and_uniqueness(settings):
    tokens = TokenService(settings)
    first = tokens.issue_refresh_token(3)
    second = tokens.issue_refresh_token(3)
    assert first != second
    payload = tokens.verify_refresh(first)
    assert payload["id"] == 3
    assert "role" not in payload
    assert payload["exp"] - payload["iat"] == int(timedelta(days=7).total_seconds())


def test_tokens_are_not_interchangeable(settings):
    tokens = TokenService(settings)
    with pytest.raises(InvalidToken):
        tokens.verify_access(tokens.issue_refresh_token(1))
    with pytest.raises(InvalidToken):
        tokens.verify_refresh(tokens.issue_access_token(1, "admin"))


def test_expired_token_is_rejected(settings):
    tokens = TokenService(settings)
    expired = jwt.encode({"id": 1, "role": "admin", "exp": 1}, settings.jwt_secret, algorithm="HS256")
    with pytest.raises(InvalidToken, match="expired"):
        tokens.verify(expired, settings.jwt_secret)


def test_tampered_token_is_rejected(settings):
    tokens = TokenService(settings)
    forged = jwt.encode({"id": 1, "role": "admin"}, "some-other-secret", algorithm="HS256")
    with pytest.raises(InvalidToken):
        tokens.verify_access(forged)


def test_settings_require_jwt_secrets(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.setenv("JWT_REFRESH_SECRET", "refresh")
    with pytest.raises(ConfigError, match="JWT_SECRET"):
        Settings.from_env()


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JWT_SECRET", "access")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "refresh")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    settings = Settings.from_env()
    assert settings.port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ("http://a.test", "http://b.test")
    assert settings.access_token_exp_minutes == 120
