"""JWT operations.

Tokens are issued by an external identity service; ``create_token`` exists for
tooling and tests. ``sub`` holds the user id as a string.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta

import jwt

from ..config import WebConfig

_config: WebConfig | None = None


def _get_config() -> WebConfig:
    global _config
    if _config is None:
        _config = WebConfig.load()
    return _config


def configure(config: WebConfig) -> None:
    """Use ``config`` for signing and verification from now on."""
    global _config
    _config = config


def create_token(user_id: int, email: str = "") -> str:
    """Create a JWT token for a user."""
    config = _get_config()
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.now(UTC) + timedelta(hours=config.jwt_expire_hours),
        "iat": datetime.now(UTC),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises jwt.InvalidTokenError on failure."""
    config = _get_config()
    return jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])


def user_id_from_token(token: str) -> int:
    """Decode ``token`` and return its user id. Raises jwt.InvalidTokenError."""
    payload = decode_token(token)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise jwt.InvalidTokenError("Token has no valid subject") from None
