"""FastAPI auth dependencies: get_current_user, require_role.

Tokens are issued by the identity service and signed with SECRET_KEY. The
``sub`` claim is the platform user id and ``role`` is one of UserRole.
"""

import uuid

import sentry_sdk
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from aqar.core.config import settings
from aqar.models.enums import UserRole
from aqar.schemas.auth import CurrentUser

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=True)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning("jwt_verification_failed", error=str(e))
        raise _unauthorized("Invalid or expired token") from e

    try:
        current_user = CurrentUser(
            user_id=uuid.UUID(str(payload.get("sub"))),
            role=UserRole(payload.get("role")),
        )
    except ValueError as e:
        raise _unauthorized("Token missing or malformed subject/role claims") from e

    # PII-free: id and role only
    sentry_sdk.set_user({"id": str(current_user.user_id)})
    sentry_sdk.set_tag("user_role", current_user.role.value)

    return current_user


def require_role(allowed_roles: list[UserRole]):
    """
    Dependency factory: checks if current user has one of the allowed roles.

    Usage:
        current_user: CurrentUser = Depends(require_role([UserRole.ADMIN]))
    """

    async def _check_role(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role.value}' not authorized. Required: {[r.value for r in allowed_roles]}",
            )
        return current_user

    return _check_role
