"""
Authenticated principal and HS256 token helpers
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt as pyjwt

from wallet_engine.infrastructure.settings import get_settings


@dataclass
class Principal:
    """Authenticated caller"""
    sub: str  # JWT 'sub' claim (user id)
    email: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    claims: Dict[str, Any] = field(default_factory=dict)


def create_access_token(
    sub: str,
    roles: Optional[List[str]] = None,
    email: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    Issue an HS256 bearer token (local tooling and tests; production tokens come
    from the marketplace's auth service with the same secret and claims).
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "roles": roles or ["USER"],
        "iat": now,
        "exp": now + expires_in,
    }
    if email:
        payload["email"] = email
    return pyjwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
