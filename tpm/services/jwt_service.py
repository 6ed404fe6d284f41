"""
JWT Service — access token verification.

Algorithm: HS256, secret from JWT_SECRET_KEY (falls back to SECRET_KEY).

Expected access token payload:
{
    "sub": <user_id>,
    "tenant_id": <tenant_id>,
    "roles": ["manager", ...],
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>
}
"""

import jwt
from flask import current_app

ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    """Decode an access token — convenience wrapper."""
    return decode_token(token, expected_type="access")
