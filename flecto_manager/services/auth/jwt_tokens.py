from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import timedelta
from uuid import uuid4

import jwt

from flecto_manager.core.config import Settings, get_settings
from flecto_manager.core.errors import ConfigurationError, InvalidToken
from flecto_manager.domain.models import User, utc_now
from flecto_manager.domain.types import AuthType, TokenType


JWT_ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    # Unix timestamp of the access token expiry.
    expires_at: int


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    auth_type: str
    token_type: str
    issuer: str
    issued_at: int
    expires_at: int


def hash_token(value: str) -> str:
    # Lower-case SHA-256 hex, used for refresh tokens and API tokens alike.
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _secret(settings: Settings) -> str:
    if len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(f"jwt_secret must be at least {MIN_SECRET_LENGTH} characters")
    return settings.jwt_secret


def _encode(user: User, auth_type: str, token_type: TokenType, ttl_s: int, settings: Settings) -> tuple[str, int]:
    now = utc_now()
    expires = now + timedelta(seconds=ttl_s)
    claims = {
        "sub": user.username,
        "iss": settings.jwt_issuer,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
        # Keeps tokens issued within the same second distinct.
        "jti": uuid4().hex,
        "uid": user.id,
        "username": user.username,
        "authType": auth_type,
        "type": token_type.value,
    }
    token = jwt.encode(claims, _secret(settings), algorithm=JWT_ALGORITHM)
    return token, int(expires.timestamp())


def issue_token_pair(
    user: User, auth_type: str = AuthType.BASIC.value, settings: Settings | None = None
) -> TokenPair:
    settings = settings or get_settings()
    access, expires_at = _encode(user, auth_type, TokenType.ACCESS, settings.jwt_access_token_ttl_s, settings)
    refresh, _ = _encode(user, auth_type, TokenType.REFRESH, settings.jwt_refresh_token_ttl_s, settings)
    return TokenPair(access_token=access, refresh_token=refresh, expires_at=expires_at)


def parse_token(token: str, settings: Settings | None = None) -> TokenClaims:
    settings = settings or get_settings()
    try:
        claims = jwt.decode(
            token,
            _secret(settings),
            algorithms=[JWT_ALGORITHM],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidToken() from exc
    try:
        return TokenClaims(
            user_id=int(claims["uid"]),
            username=str(claims["username"]),
            auth_type=str(claims.get("authType", AuthType.BASIC.value)),
            token_type=str(claims["type"]),
            issuer=str(claims["iss"]),
            issued_at=int(claims["iat"]),
            expires_at=int(claims["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken() from exc
