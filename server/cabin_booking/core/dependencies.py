"""FastAPI dependencies for authentication and booking services."""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    username: Optional[str] = None
    email: Optional[str] = None


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> CurrentUser:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        CurrentUser: User taken from the token's ``sub`` claim

    Raises:
        AuthenticationError: If the token is missing, malformed, expired or invalid
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError(detail="Invalid authorization header format")

    try:
        # exp is verified by PyJWT when present
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError(detail="Invalid token payload")

    return CurrentUser(
        user_id=str(user_id),
        username=payload.get("username"),
        email=payload.get("email"),
    )


def get_booking_locker(request: Request):
    return request.app.state.booking_locker


def get_refund_resolver(request: Request):
    return request.app.state.refund_resolver


RequiredAuth = Depends(get_current_user)
BookingLockerDependency = Depends(get_booking_locker)
RefundResolverDependency = Depends(get_refund_resolver)
