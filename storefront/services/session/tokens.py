"""JWT expiry helpers."""
import time
from typing import Optional

from jose import JWTError, jwt  # python-jose


def _expires_at(token: str) -> Optional[float]:
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    return float(exp) if isinstance(exp, (int, float)) else None


def has_expiry(token: str) -> bool:
    """True when the token is a JWT carrying an ``exp`` claim."""
    return _expires_at(token) is not None


def is_token_expired(token: str, now: Optional[float] = None) -> bool:
    """True when the token is past its ``exp`` claim or cannot be decoded."""
    expires_at = _expires_at(token)
    if expires_at is None:
        return True
    current = time.time() if now is None else now
    return expires_at < current


def will_token_expire_soon(
    token: str, threshold_minutes: int = 5, now: Optional[float] = None
) -> bool:
    """True when the token expires within ``threshold_minutes``."""
    expires_at = _expires_at(token)
    if expires_at is None:
        return True
    current = time.time() if now is None else now
    return expires_at < current + threshold_minutes * 60
