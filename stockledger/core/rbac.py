"""Role-Based Access Control (RBAC) utilities.

Every failure (missing token, bad token, inactive user, insufficient role)
is reported as 401 so callers cannot tell which check rejected them.
"""

from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from stockledger.core.security import decode_access_token
from stockledger.db.session import DbSession


class UserRole(str, Enum):
    """User roles for RBAC."""

    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    CUSTOMER = "CUSTOMER"


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        email: The user's email address.
        role: The user's role.
    """

    def __init__(self, user_id: int, email: str, role: UserRole):
        self.user_id = user_id
        self.id = user_id
        self.email = email
        self.role = role


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(request: Request, db: DbSession) -> TokenData:
    """Get the current authenticated user from the Bearer token.

    The token must decode, carry sub/email/role, and point at an active user.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise _unauthorized()

    payload = decode_access_token(auth_header.split(" ", 1)[1])
    if payload is None:
        raise _unauthorized()

    user_id = payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")
    if user_id is None or email is None or role is None:
        raise _unauthorized()

    try:
        user_role = UserRole(role)
        user_id = int(user_id)
    except ValueError:
        raise _unauthorized()

    from stockledger.models.user import User

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized()

    return TokenData(user_id=user_id, email=email, role=user_role)


def require_roles(*roles: UserRole):
    """Dependency requiring the current user to hold one of ``roles``."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        if current_user.role not in roles:
            raise _unauthorized()
        return current_user

    return role_checker


# Common role dependencies
RequireAdmin = Annotated[TokenData, Depends(require_roles(UserRole.ADMIN))]
RequireStaff = Annotated[TokenData, Depends(require_roles(UserRole.ADMIN, UserRole.EDITOR))]
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
