"""Unit tests for JWT token creation, decoding, and validation."""

from datetime import timedelta

import pytest
from jose import JWTError, jwt

from app.auth.jwt import create_access_token, decode_token
from app.config import settings


class TestCreateAccessToken:
    """Test access token creation."""

    def test_contains_sub_claim(self):
        token = create_access_token({"sub": "account-abc"})
        payload = decode_token(token)
        assert payload["sub"] == "account-abc"

    def test_contains_iat_claim(self):
        token = create_access_token({"sub": "account-123"})
        payload = decode_token(token)
        assert "iat" in payload

    def test_contains_exp_claim(self):
        token = create_access_token({"sub": "account-123"})
        payload = decode_token(token)
        assert "exp" in payload

    def test_custom_expiry_delta(self):
        token = create_access_token({"sub": "account-123"}, expires_delta=timedelta(hours=1))
        payload = decode_token(token)
        assert payload["sub"] == "account-123"

    def test_audience_added_when_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "jwt_audience", "authenticated")
        token = create_access_token({"sub": "account-123"})
        assert decode_token(token)["aud"] == "authenticated"


class TestDecodeToken:
    """Test token decoding and validation."""

    def test_decode_expired_token_raises(self):
        token = create_access_token({"sub": "account-123"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_token(token)

    def test_decode_invalid_token_raises(self):
        with pytest.raises(JWTError):
            decode_token("not.a.valid.token")

    def test_decode_empty_string_raises(self):
        with pytest.raises(JWTError):
            decode_token("")

    def test_wrong_secret_rejected(self):
        token = jwt.encode({"sub": "account-123"}, "another-secret", algorithm=settings.jwt_algorithm)
        with pytest.raises(JWTError):
            decode_token(token)

    def test_wrong_audience_rejected(self, monkeypatch):
        token = create_access_token({"sub": "account-123", "aud": "someone-else"})
        monkeypatch.setattr(settings, "jwt_audience", "authenticated")
        with pytest.raises(JWTError):
            decode_token(token)
