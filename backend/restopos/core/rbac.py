"""Acting-user resolution from the bearer token."""

from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from restopos.core.security import decode_access_token


class UserRole(str, Enum):
    """Staff roles carried in the token."""

    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        id: Alias for user_id; services stamp ``user.id`` onto audit fields.
        email: The user's email address.
        role: The user's role (owner/manager/staff).
        full_name: The user's display name (defaults to email prefix).
    """

    def __init__(self, user_id: int, email: str, role: UserRole, full_name: str = ""):
        self.user_id = user_id
        self.id = user_id
        self.email = email
        self.role = role
        self.full_name = full_name or email.split("@")[0]


async def get_current_user(request: Request) -> TokenData:
    """Get the current authenticated user from the JWT bearer token."""
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")

    if user_id is None or email is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
        )

    return TokenData(
        user_id=int(user_id), email=email, role=user_role,
        full_name=payload.get("full_name", "") or "",
    )


CurrentUser = Annotated[TokenData, Depends(get_current_user)]
