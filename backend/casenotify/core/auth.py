from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from fastapi import HTTPException, Request

from casenotify.core.config import settings
from casenotify.models.user import UserRole


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the authenticated caller, as asserted by its bearer token."""

    user_id: UUID
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in UserRole.staff()


def create_access_token(user_id: UUID, role: UserRole | str, expires_in_hours: int = 12) -> str:
    """Issue a bearer token for ``user_id``. Used by tests and local tooling."""
    payload = {
        "sub": str(user_id),
        "role": UserRole(role).value,
        "exp": datetime.now(UTC) + timedelta(hours=expires_in_hours),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    """Decode and validate a bearer token.

    Raises jwt.InvalidTokenError (or a subclass) when the signature, expiry or
    claims are not acceptable.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    try:
        return CurrentUser(user_id=UUID(payload["sub"]), role=UserRole(payload["role"]))
    except (KeyError, ValueError) as e:
        raise jwt.InvalidTokenError("Token is missing a valid subject or role") from e


def get_current_user(request: Request) -> CurrentUser:
    """Extract the caller identity from the ``Authorization`` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Authentication required")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = auth_header[7:]
    if not token:
        raise HTTPException(status_code=401, detail="Bearer token is required")

    try:
        return decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired") from None
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token") from None
