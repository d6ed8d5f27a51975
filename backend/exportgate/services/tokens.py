"""Signed capability tokens and caller identity."""
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import jwt

from ..utils.logger import logger


ALGORITHM = "HS256"
EXPORT_SCOPE = "export"


@dataclass(frozen=True)
class TokenClaims:
    """Verified content of a capability token."""

    session_id: str
    user_id: Optional[str] = None


def issue_capability_token(
    session_id: str,
    secret: str,
    user_id: Optional[Union[str, int]] = None,
    ttl: timedelta = timedelta(hours=24),
) -> str:
    """Sign a token granting export access to one session.

    Args:
        session_id: Session the holder may export
        secret: Signing secret
        user_id: Optional buyer id, for traceability
        ttl: Token lifetime

    Returns:
        Encoded JWT
    """
    if not secret:
        raise ValueError("A signing secret is required to issue capability tokens")

    now = datetime.now(timezone.utc)
    payload = {
        "sessionId": session_id,
        "scope": EXPORT_SCOPE,
        "iat": now,
        "exp": now + ttl,
    }
    if user_id is not None:
        payload["userId"] = str(user_id)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_capability_token(token: Optional[str], secret: str) -> Optional[TokenClaims]:
    """Verify a capability token's signature, expiry and scope.

    Args:
        token: Encoded token, possibly absent
        secret: Signing secret

    Returns:
        Claims if the token is valid, None otherwise
    """
    if not token or not secret:
        return None

    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        logger.debug(f"Capability token rejected: {e}")
        return None

    session_id = payload.get("sessionId")
    if payload.get("scope") != EXPORT_SCOPE or not isinstance(session_id, str):
        return None

    user_id = payload.get("userId")
    return TokenClaims(session_id=session_id, user_id=str(user_id) if user_id is not None else None)


def token_grants_session(token: Optional[str], session_id: str, secret: str) -> bool:
    """True only if the token verifies and was issued for exactly this session."""
    claims = verify_capability_token(token, secret)
    return claims is not None and claims.session_id == session_id


def legacy_token_matches(stored: Optional[str], presented: Optional[str]) -> bool:
    """Constant-time comparison of a legacy single-use download token."""
    if not stored or not presented:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), presented.encode("utf-8"))


def user_id_from_authorization(authorization: Optional[str], secret: str) -> Optional[str]:
    """Read the caller's user id from an ``Authorization: Bearer`` header.

    Invalid, expired or missing credentials mean an anonymous caller.
    """
    if not authorization or not secret:
        return None

    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None

    try:
        payload = jwt.decode(credentials.strip(), secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        logger.debug(f"Bearer token rejected: {e}")
        return None

    user_id = payload.get("userId")
    if user_id is None or isinstance(user_id, bool):
        return None
    return str(user_id)
