"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
This module validates JWT bearer tokens and applies role checks using the
security utilities defined in security.py.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


class Role(str, Enum):
    """Roles that can act on student applications."""

    STUDENT = "student"
    AGENT = "agent"
    STAFF = "staff"
    SUPER_ADMIN = "super_admin"


REVIEWER_ROLES = (Role.STAFF, Role.SUPER_ADMIN)


@dataclass
class CurrentUser:
    """
    Represents an authenticated user.

    Populated from JWT claims after token validation.
    """

    id: UUID
    email: str
    role: Role
    name: str | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, role={self.role.value})"


def _is_dev_mode_safe() -> bool:
    """
    Check if development token mode can be enabled.

    Both the settings object and the raw PYTHON_ENV variable must agree that
    this is a development process.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = CurrentUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@admissions.dev",
    role=Role.SUPER_ADMIN,
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"success": False, "error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _dev_user_from_token(token: str) -> CurrentUser | None:
    """
    Resolve development tokens.

    Accepted forms: "dev-token" (super admin) and "<role>:<uuid>",
    for example "agent:3f1c...".
    """
    if token == "dev-token":
        return _DEV_ADMIN

    role_part, sep, id_part = token.partition(":")
    if not sep:
        return None
    try:
        role = Role(role_part)
        user_id = UUID(id_part)
    except ValueError:
        return None

    return CurrentUser(
        id=user_id,
        email=f"{role.value}-{str(user_id)[:8]}@admissions.dev",
        role=role,
        name=f"Test {role.value.replace('_', ' ').title()}",
    )


async def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Validate a bearer token and extract user claims.

    Raises:
        HTTPException 401: If token is invalid, expired or has bad claims
    """
    if _DEVELOPMENT_MODE:
        dev_user = _dev_user_from_token(token)
        if dev_user is not None:
            logger.debug("Development mode: Using test token")
            return dev_user

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return CurrentUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=Role(payload.get("role", "")),
            name=payload.get("name"),
        )
    except ValueError as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency that validates the bearer token and returns the user.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
    """
    user = await _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id} ({user.role.value})")
    return user


def require_roles(*roles: Role) -> Callable[..., Awaitable[CurrentUser]]:
    """
    Build a dependency that only admits users holding one of `roles`.

    Usage:
        @router.get("/pending")
        async def pending(user: CurrentUser = Depends(require_roles(*REVIEWER_ROLES))):
            ...
    """
    allowed = set(roles)

    async def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            logger.warning(
                f"Access denied: user {user.id} has role '{user.role.value}', "
                f"requires one of {sorted(r.value for r in allowed)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "success": False,
                    "error": "ROLE_NOT_PERMITTED",
                    "message": "You do not have permission to perform this action.",
                },
            )
        return user

    return _dependency


__all__ = [
    "REVIEWER_ROLES",
    "CurrentUser",
    "Role",
    "get_current_user",
    "require_roles",
]
