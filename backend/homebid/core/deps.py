"""
FastAPI dependencies for authentication and authorization.

WHY: Dependencies provide reusable authentication and role checks that
can be injected into route handlers. Ownership checks (is this your
proposal / your project?) live in the services, because they need the
loaded entity.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from homebid.core.auth import Principal, UserRole, principal_from_token
from homebid.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    TokenExpiredError,
    TokenInvalidError,
)


# HTTP Bearer token security scheme
# Format: "Authorization: Bearer <token>"
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """
    Get the authenticated principal from the JWT bearer token.

    Usage:
        @router.get("/protected")
        async def protected_route(principal: Principal = Depends(get_current_principal)):
            return {"user_id": principal.user_id}

    Args:
        credentials: JWT token from Authorization header

    Returns:
        Principal with user_id and role

    Raises:
        AuthenticationError: If the header is missing or the token is invalid/expired
    """
    if credentials is None:
        raise AuthenticationError(message="Missing bearer token")

    try:
        return principal_from_token(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        # WHY: Re-raise as AuthenticationError for consistent API responses
        raise AuthenticationError(
            message=e.message,
            status_code=e.status_code,
        )


def require_role(*allowed: UserRole):
    """
    Factory function to create a role requirement dependency.

    Usage:
        @router.post("/proposals")
        async def submit(principal: Principal = Depends(require_role(UserRole.CONTRACTOR))):
            ...

    Args:
        *allowed: Roles permitted to call the route

    Returns:
        Dependency function that checks the principal's role
    """

    async def role_checker(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role not in allowed:
            raise AuthorizationError(
                message=f"{' or '.join(r.value for r in allowed)} access required",
                user_id=principal.user_id,
                user_role=principal.role.value,
            )
        return principal

    return role_checker


require_homeowner = require_role(UserRole.HOMEOWNER)
require_contractor = require_role(UserRole.CONTRACTOR)
