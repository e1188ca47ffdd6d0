"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user   → bearer token → active User
  require_facility   → user must be attached to a facility
  require_role(...)  → restrict to specific roles (implies a facility)
  require_writer     → admin or grower; viewers are read-only
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from growtrack.auth.jwt import decode_token
from growtrack.database import get_db
from growtrack.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized("Missing bearer token")

    claims = decode_token(credentials.credentials)
    if claims.get("type") != "access" or not claims.get("sub"):
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, claims["sub"])
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")
    return user


async def require_facility(user: User = Depends(get_current_user)) -> User:
    """Grow endpoints are facility-scoped; users without one are rejected."""
    if not user.facility_id:
        raise _forbidden("No facility context for this user")
    return user


def require_role(*roles: UserRole):
    """Build a dependency that admits only the given roles.

        @router.post("/{harvest_id}/admin-review")
        async def review(user: User = Depends(require_role(UserRole.ADMIN))):
    """
    allowed = ", ".join(r.value for r in roles)

    async def _check(user: User = Depends(require_facility)) -> User:
        if user.role not in roles:
            raise _forbidden(f"Requires role: {allowed}")
        return user

    return _check


require_writer = require_role(UserRole.ADMIN, UserRole.GROWER)
