"""
FastAPI access guard dependencies.

Resolves the caller's (user_id, role) from the bearer token. The attempt
lifecycle trusts a student id only after it has passed through here.
"""
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .security import decode_token
from .error_responses import ErrorMessages
from .exceptions import Unauthorized

# auto_error=False so missing credentials surface as our Unauthorized kind
security = HTTPBearer(auto_error=False)

Role = Literal["student", "admin"]


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller as resolved from the access token."""

    user_id: str
    role: Role


def _decode_identity(token: str) -> CallerIdentity:
    """
    Decode an access token into a CallerIdentity.

    Raises:
        Unauthorized: If the token is invalid, expired, of the wrong type,
            or lacks user_id/role claims
    """
    payload = decode_token(token)
    if payload is None:
        raise Unauthorized(ErrorMessages.INVALID_TOKEN)

    if payload.get("type", "access") != "access":
        raise Unauthorized(ErrorMessages.INVALID_TOKEN)

    user_id = payload.get("user_id")
    role = payload.get("role")
    if user_id is None or role not in ("student", "admin"):
        raise Unauthorized(ErrorMessages.INVALID_TOKEN_PAYLOAD)

    return CallerIdentity(user_id=str(user_id), role=role)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CallerIdentity:
    """
    Resolve the authenticated caller.

    Raises:
        Unauthorized: If no bearer token is present or it fails validation
    """
    if credentials is None:
        raise Unauthorized(ErrorMessages.MISSING_CREDENTIALS)
    return _decode_identity(credentials.credentials)


async def require_student(
    identity: CallerIdentity = Depends(get_current_identity),
) -> CallerIdentity:
    """
    Require the caller to hold the student role.

    Whether the student still exists and is active is checked by the
    lifecycle operations themselves, inside their transaction.
    """
    if identity.role != "student":
        raise Unauthorized(ErrorMessages.STUDENT_ROLE_REQUIRED)
    return identity
