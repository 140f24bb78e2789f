import datetime as dt
from typing import Any, Dict, Optional

import jwt

from download_access.core.settings import settings


def _utc_now() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


def create_access_token(subject: str, role: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    """Bearer token for the download API. Normally minted by the identity provider sharing our secret."""
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expires_minutes
    payload: Dict[str, Any] = {
        "sub": subject,
        "type": "access",
        "exp": _utc_now() + dt.timedelta(minutes=minutes),
        "iat": _utc_now(),
    }
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, settings.access_token_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.access_token_secret, algorithms=[settings.jwt_algorithm])
