from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from flecto_manager.core.config import Settings
from flecto_manager.core.errors import ConfigurationError, InvalidToken
from flecto_manager.domain.models import User
from flecto_manager.services.auth.api_tokens import TOKEN_PREFIX, generate_token, looks_like_token, token_preview
from flecto_manager.services.auth.jwt_tokens import JWT_ALGORITHM, hash_token, issue_token_pair, parse_token
from flecto_manager.services.auth.passwords import hash_password, verify_password


SECRET = "unit-test-secret-that-is-long-enough"


def _settings(**overrides) -> Settings:
    return Settings(jwt_secret=SECRET, **overrides)


def test_generated_tokens_are_prefixed_and_unique() -> None:
    first, second = generate_token(), generate_token()
    assert first.startswith(TOKEN_PREFIX)
    assert looks_like_token(first)
    assert not looks_like_token("eyJhbGciOi")
    assert first != second
    # 32 random bytes as unpadded url-safe base64.
    assert len(first) == len(TOKEN_PREFIX) + 43


def test_token_preview_masks_the_middle() -> None:
    assert token_preview("flecto_abcdefghijklmnop") == "flecto_abcd...mnop"
    assert token_preview("flecto_short") == "flecto_short"


def test_hash_token_is_lower_hex_sha256() -> None:
    digest = hash_token("flecto_value")
    assert len(digest) == 64
    assert digest == digest.lower()
    assert digest == hash_token("flecto_value")


def test_issue_and_parse_token_pair() -> None:
    settings = _settings()
    user = User(id=7, username="alice", firstname="Alice", lastname="Doe")
    pair = issue_token_pair(user, settings=settings)
    assert pair.access_token != pair.refresh_token

    access = parse_token(pair.access_token, settings)
    assert access.user_id == 7
    assert access.username == "alice"
    assert access.token_type == "access"
    assert access.auth_type == "basic"
    assert access.expires_at == pair.expires_at
    assert parse_token(pair.refresh_token, settings).token_type == "refresh"


def test_parse_rejects_expired_and_foreign_tokens() -> None:
    settings = _settings()
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    expired = jwt.encode(
        {
            "sub": "alice",
            "iss": settings.jwt_issuer,
            "iat": int((past - timedelta(hours=1)).timestamp()),
            "exp": int(past.timestamp()),
            "uid": 1,
            "username": "alice",
            "type": "access",
        },
        SECRET,
        algorithm=JWT_ALGORITHM,
    )
    with pytest.raises(InvalidToken):
        parse_token(expired, settings)

    user = User(id=1, username="alice", firstname="A", lastname="D")
    foreign = issue_token_pair(user, settings=_settings(jwt_issuer="someone-else"))
    with pytest.raises(InvalidToken):
        parse_token(foreign.access_token, settings)
    with pytest.raises(InvalidToken):
        parse_token("not-a-jwt", settings)


def test_short_secret_is_a_configuration_error() -> None:
    user = User(id=1, username="alice", firstname="A", lastname="D")
    with pytest.raises(ConfigurationError):
        issue_token_pair(user, settings=Settings(jwt_secret="short"))


def test_password_hash_round_trip() -> None:
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("anything", None)
    assert not verify_password("anything", "not-a-bcrypt-hash")
