"""JWT utilities for tokens issued to MCP clients.

Provides stateless token generation and validation using PyJWT.
Three token types share one signing secret:
- access: bearer token for /mcp, names the anchor identity
- refresh: exchanged at /token for a new access token
- connect: short-lived, embedded in "connect another provider" links
"""

import os
import secrets
import logging
import time
from typing import Optional

import jwt

from config import CONFIG_DIR

logger = logging.getLogger(__name__)

# JWT configuration
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_SECONDS = 24 * 60 * 60  # 24 hours
REFRESH_TOKEN_EXPIRE_SECONDS = 30 * 24 * 60 * 60  # 30 days
CONNECT_TOKEN_EXPIRE_SECONDS = 15 * 60  # 15 minutes

# Secret key storage
_jwt_secret: Optional[str] = None
SECRET_FILE = CONFIG_DIR / "jwt_secret"


def set_secret(secret: str) -> None:
    """Use an explicit signing secret (JWT_SECRET or tests)."""
    global _jwt_secret
    _jwt_secret = secret


def _get_or_create_secret() -> str:
    """Get JWT secret from memory or file, or create one if it doesn't exist.

    A file-backed secret keeps issued tokens valid across restarts when
    JWT_SECRET is not configured.
    """
    global _jwt_secret

    if _jwt_secret:
        return _jwt_secret

    if SECRET_FILE.exists():
        try:
            _jwt_secret = SECRET_FILE.read_text().strip()
            if _jwt_secret:
                logger.info("[JWT] Loaded JWT secret from file")
                return _jwt_secret
        except IOError:
            pass

    _jwt_secret = secrets.token_urlsafe(64)

    try:
        SECRET_FILE.parent.mkdir(parents=True, exist_ok=True)
        SECRET_FILE.write_text(_jwt_secret)
        os.chmod(SECRET_FILE, 0o600)  # Owner read/write only
        logger.info("[JWT] Generated and saved new JWT secret")
    except IOError as e:
        logger.warning(f"[JWT] Could not save JWT secret to file: {e}")

    return _jwt_secret


def _create_token(claims: dict, token_type: str, issuer: str, expires_in: int) -> str:
    now = int(time.time())
    payload = {
        **claims,
        "iss": issuer,
        "iat": now,
        "exp": now + expires_in,
        "type": token_type,
    }
    return jwt.encode(payload, _get_or_create_secret(), algorithm=JWT_ALGORITHM)


def _verify_token(token: str, token_type: str, issuer: str = None) -> Optional[dict]:
    options = {"require": ["exp", "sub"]}
    kwargs = {"issuer": issuer} if issuer else {}

    try:
        payload = jwt.decode(
            token,
            _get_or_create_secret(),
            algorithms=[JWT_ALGORITHM],
            options=options,
            **kwargs
        )
    except jwt.ExpiredSignatureError:
        logger.debug(f"[JWT] {token_type} token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[JWT] Invalid {token_type} token: {e}")
        return None

    if payload.get("type") != token_type:
        logger.debug(f"[JWT] Token is not a {token_type} token")
        return None
    return payload


def create_access_token(
    user_id: str,
    user_email: str,
    user_name: str,
    client_id: str,
    scope: str,
    integrations: list[str],
    grant_id: str,
    issuer: str,
    expires_in: int = ACCESS_TOKEN_EXPIRE_SECONDS
) -> str:
    """Create a JWT access token.

    Args:
        user_id: Anchor identity login
        user_email: Anchor identity email (may be empty)
        user_name: Display name
        client_id: The OAuth client ID
        scope: The granted OAuth scope
        integrations: Connected provider names at issuance time
        grant_id: Key of the stored credential bundle for this grant
        issuer: The token issuer (server URL)
        expires_in: Token lifetime in seconds (default 24 hours)

    Returns:
        A signed JWT token string
    """
    claims = {
        "sub": user_id,
        "email": user_email,
        "name": user_name,
        "client_id": client_id,
        "scope": scope,
        "integrations": integrations,
        "grant": grant_id,
    }
    return _create_token(claims, "access", issuer, expires_in)


def create_refresh_token(
    user_id: str,
    client_id: str,
    scope: str,
    grant_id: str,
    issuer: str,
    expires_in: int = REFRESH_TOKEN_EXPIRE_SECONDS
) -> str:
    """Create a JWT refresh token bound to a grant (default 30 days)."""
    claims = {"sub": user_id, "client_id": client_id, "scope": scope, "grant": grant_id}
    return _create_token(claims, "refresh", issuer, expires_in)


def create_connect_token(
    user_id: str,
    grant_id: str,
    issuer: str,
    expires_in: int = CONNECT_TOKEN_EXPIRE_SECONDS
) -> str:
    """Create a short-lived token naming who a direct connect link is for."""
    return _create_token({"sub": user_id, "grant": grant_id}, "connect", issuer, expires_in)


def verify_access_token(token: str, issuer: str = None) -> Optional[dict]:
    """Verify and decode a JWT access token.

    Returns:
        The decoded payload if valid, None otherwise.
    """
    return _verify_token(token, "access", issuer)


def verify_refresh_token(token: str, issuer: str = None) -> Optional[dict]:
    return _verify_token(token, "refresh", issuer)


def verify_connect_token(token: str, issuer: str = None) -> Optional[dict]:
    return _verify_token(token, "connect", issuer)
