"""
Bearer-token authentication for the API.

Devices send `Authorization: Bearer <jwt>`; the token's `sub` claim is the
user id. Tokens are HS256-signed with JWT_SECRET.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app, g, request

from errors import AuthError

logger = logging.getLogger(__name__)


def create_access_token(user_id: str, secret: str, algorithm: str = "HS256",
                        ttl_minutes: int = 10080) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> str:
    """Return the user id carried by a valid token. Raises AuthError."""
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise AuthError("Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Token has no subject")
    return str(user_id)


def jwt_required(view):
    """Require a valid bearer token; sets g.user_id."""

    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthError("Missing bearer token")
        g.user_id = decode_access_token(
            token.strip(),
            current_app.config["JWT_SECRET"],
            current_app.config.get("JWT_ALGORITHM", "HS256"),
        )
        return view(*args, **kwargs)

    return wrapped
