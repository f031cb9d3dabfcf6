"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, Request

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import (
    AuthenticationError,
    AuthorizationError,
    UnsupportedMediaTypeError,
)
from src.core.config import get_settings
from src.schemas.auth import UserContext


def _user_from_authorization(authorization: str) -> UserContext:
    """Validate a "Bearer <token>" header value and build the user context.

    Raises:
        AuthenticationError: If the header is malformed or the token is invalid.
    """
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError(
            "Invalid authorization header format. Expected: Bearer <token>",
        )

    try:
        payload = decode_jwt(parts[1])
    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise AuthenticationError("Token has expired") from e
        raise AuthenticationError(e.message) from e

    return payload.to_user_context(get_settings().admin_user_ids_list)


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Use this for endpoints that require authentication.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        AuthenticationError: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise AuthenticationError("Missing authentication token. Include Authorization: Bearer <token>")
    return _user_from_authorization(authorization)


async def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Extract the current user if an Authorization header is present.

    A present-but-invalid token is still rejected.

    Args:
        authorization: Optional Authorization header value.

    Returns:
        UserContext | None: The user context if authenticated, None otherwise.
    """
    if not authorization:
        return None
    return _user_from_authorization(authorization)


async def get_admin_user(user: Annotated[UserContext, Depends(get_current_user)]) -> UserContext:
    """Require an authenticated administrator.

    Raises:
        AuthorizationError: 403 if the user is not an admin.
    """
    if not user.is_admin:
        raise AuthorizationError("Admin privileges required")
    return user


async def require_json_content_type(
    content_type: Annotated[str | None, Header()] = None,
) -> None:
    """Reject bodies that are not declared as application/json.

    Raises:
        UnsupportedMediaTypeError: 415 if the Content-Type is missing or different.
    """
    if not content_type or "application/json" not in content_type.lower():
        raise UnsupportedMediaTypeError(
            "Invalid content type",
            details=[{"loc": ["header", "content-type"], "msg": "Set Content-Type: application/json", "type": "content_type"}],
        )


def get_client_ip(request: Request) -> str | None:
    """Get the caller's IP, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
OptionalUser = Annotated[UserContext | None, Depends(get_optional_user)]
AdminUser = Annotated[UserContext, Depends(get_admin_user)]
ClientIP = Annotated[str | None, Depends(get_client_ip)]
JSONBody = Depends(require_json_content_type)
