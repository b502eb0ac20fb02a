# backend/flightops/security.py

"""
Caller context for flightops.

Responsibilities:
- JWT access token creation (tooling/tests) and decoding
- FastAPI dependency turning the bearer token into an `ActorContext`
- Role-based access helpers for router dependencies

Identity and tenant resolution live outside this service: the token issuer
puts `sub`, `tenant_id` and `role` in the claims and every service receives
the resulting context as an explicit argument.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set, Union

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class Role(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    MEMBER = "member"
    STUDENT = "student"


STAFF_ROLES = frozenset({Role.OWNER, Role.ADMIN, Role.INSTRUCTOR})


@dataclass(frozen=True)
class ActorContext:
    user_id: str
    tenant_id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    The `data` dict should already include the caller claims, e.g.:
        {"sub": user_id, "tenant_id": tenant_id, "role": "instructor"}
    """
    to_encode = data.copy()

    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_actor(token: str) -> ActorContext:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise _credentials_exception()

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    raw_role = payload.get("role")
    if not user_id or not tenant_id or not raw_role:
        raise _credentials_exception()

    try:
        role = Role(str(raw_role).lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tenant role for this account",
        )
    return ActorContext(user_id=str(user_id), tenant_id=str(tenant_id), role=role)


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def get_current_actor(token: str = Depends(oauth2_scheme)) -> ActorContext:
    """Decode the bearer token into the caller context."""
    return decode_actor(token)


def require_roles(
    *allowed_roles: Union[Role, str],
) -> Callable[[ActorContext], ActorContext]:
    """
    Dependency factory to enforce that the caller has one of the given roles.

    Usage:
        @router.post(...)
        def endpoint(actor: ActorContext = Depends(require_roles(Role.OWNER, "admin"))):
            ...
    """
    normalised_roles: Set[Role] = set()
    for r in allowed_roles:
        if isinstance(r, Role):
            normalised_roles.add(r)
        else:
            try:
                normalised_roles.add(Role(r))
            except ValueError:
                raise ValueError(f"Unknown role {r!r} passed to require_roles()")

    def dependency(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if actor.role not in normalised_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return actor

    return dependency


require_staff = require_roles(*STAFF_ROLES)
