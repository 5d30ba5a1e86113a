"""
Authentication dependencies for FastAPI
"""

from uuid import UUID
from fastapi import Depends, HTTPException, Header, Request, status
from sqlalchemy.orm import Session
import jwt as pyjwt

from wallet_engine.auth.principal import Principal
from wallet_engine.core.security.models import Role
from wallet_engine.core.users.models import User, UserStatus
from wallet_engine.infrastructure.database import get_db
from wallet_engine.infrastructure.settings import get_settings


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": code, "message": message}},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    request: Request,
    authorization: str = Header(None),
) -> Principal:
    """
    Extract Principal from the Bearer JWT in the Authorization header.
    """
    if not authorization:
        raise _unauthorized("AUTHORIZATION_MISSING", "Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise _unauthorized("INVALID_AUTHORIZATION", "Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise _unauthorized("INVALID_AUTHORIZATION", "Invalid authentication scheme")

    settings = get_settings()
    try:
        payload = pyjwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise _unauthorized("TOKEN_EXPIRED", "Token expired")
    except pyjwt.InvalidTokenError as e:
        raise _unauthorized("INVALID_TOKEN", f"Invalid token: {str(e)}")

    principal = Principal(
        sub=payload.get("sub") or "",
        email=payload.get("email"),
        roles=payload.get("roles", [Role.USER.value]),
        claims=payload,
    )

    # Picked up by RequestLoggingMiddleware
    request.state.actor_id = principal.sub
    request.state.actor_role = ",".join(principal.roles)
    return principal


def get_user_id_from_principal(principal: Principal) -> UUID:
    """
    Extract user_id from Principal object (JWT subject claim).
    """
    if not principal.sub:
        raise _unauthorized("INVALID_PRINCIPAL", "Invalid principal - missing user identifier")
    try:
        return UUID(principal.sub)
    except (ValueError, TypeError):
        raise _unauthorized("INVALID_PRINCIPAL", "Invalid principal - invalid user identifier format")


def _require_role(role: Role):
    async def _check_role(principal: Principal = Depends(get_current_principal)):
        if role.value not in principal.roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "FORBIDDEN",
                        "message": f"Insufficient permissions - {role.value} role required",
                    }
                },
            )
        return principal
    return _check_role


def require_user_role():
    """Require USER role - returns dependency"""
    return _require_role(Role.USER)


def require_admin_role():
    """Require ADMIN role - returns dependency"""
    return _require_role(Role.ADMIN)


def get_current_user_id(
    principal: Principal = Depends(require_user_role()),
    db: Session = Depends(get_db),
) -> UUID:
    """
    Resolve the calling user's id. The user must exist and be ACTIVE.
    """
    user_id = get_user_id_from_principal(principal)
    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("USER_NOT_FOUND", "Unknown user")
    if user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": {"code": "USER_SUSPENDED", "message": "User account is suspended"}},
        )
    return user_id
