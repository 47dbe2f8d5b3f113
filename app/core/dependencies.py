from typing import NamedTuple
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from app.core.security import decode_access_token
import uuid

# Tokens come from the external identity service; tokenUrl is only used by the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"


class CurrentUser(NamedTuple):
    member_id: uuid.UUID
    role: str
    name: str


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Identity from the bearer token. The caller is trusted; nothing is re-checked in the database."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role not in (ROLE_ADMIN, ROLE_MEMBER):
        raise credentials_exception

    try:
        member_id = uuid.UUID(subject)
    except (ValueError, TypeError):
        raise credentials_exception

    return CurrentUser(member_id=member_id, role=role, name=payload.get("name") or subject)


def require_role(role_name: str):
    """Dependency factory for requiring a specific role."""
    async def role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role != role_name:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User does not have required role: {role_name}"
            )
        return current_user
    return role_checker


# Role-specific dependencies
require_admin = require_role(ROLE_ADMIN)
require_member = require_role(ROLE_MEMBER)
