"""Access token issue and verification."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from quizarena.auth.jwt import create_access_token, verify_token
from quizarena.config import get_settings


def _encode(**overrides):
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "1",
        "ext": "1001",
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    payload.update(overrides)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TestAccessToken:
    def test_round_trip(self):
        payload = verify_token(create_access_token(42, "tg-42"))
        assert payload["sub"] == "42"
        assert payload["ext"] == "tg-42"
        assert payload["type"] == "access"

    def test_wrong_type_rejected(self):
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            verify_token(_encode(type="refresh"))

    def test_expired_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            verify_token(_encode(iat=past - timedelta(minutes=5), exp=past))

    def test_wrong_issuer_rejected(self):
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(_encode(iss="someone-else"))

    def test_wrong_secret_rejected(self):
        token = jwt.encode({"sub": "1", "type": "access"}, "x" * 40, algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token)
