"""
JWT verification and the authenticated principal.

WHY: Identity is owned by an external provider. Every request carries a
signed bearer token with ``user_id`` and ``role`` claims; this module
verifies the signature and expiry and turns the claims into a Principal.
The engine trusts that claim and performs its own ownership checks
against projects and proposals.

create_access_token exists for local development and tests, where no
identity provider is running.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Any, Optional
from jose import jwt, JWTError

from homebid.core.config import settings
from homebid.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


class UserRole(str, Enum):
    """
    Marketplace roles carried in the ``role`` claim.

    - HOMEOWNER: creates projects, accepts/rejects proposals
    - CONTRACTOR: submits proposals against open projects
    - ADMIN: read access and reconciliation of failed acceptances
    """

    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller: who they are and which role they act in."""

    user_id: int
    role: UserRole

    @property
    def is_homeowner(self) -> bool:
        return self.role == UserRole.HOMEOWNER

    @property
    def is_contractor(self) -> bool:
        return self.role == UserRole.CONTRACTOR

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ============================================================================
# JWT Token Management
# ============================================================================


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token includes the given claims plus:
    - exp: Expiration time (default: JWT_EXPIRATION_MINUTES)
    - iat: Issued at time
    - nbf: Not before time

    Args:
        data: Claims to encode (user_id, role)
        expires_delta: Optional custom expiration time

    Returns:
        JWT token string

    Example:
        >>> token = create_access_token({"user_id": 1, "role": "homeowner"})
        >>> verify_token(token)["user_id"]
        1
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update(
        {
            "exp": expire,
            "iat": datetime.utcnow(),
            "nbf": datetime.utcnow(),
        }
    )

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )


def principal_from_token(token: str) -> Principal:
    """
    Build a Principal from a bearer token.

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If the signature is bad or claims are missing/unknown
    """
    payload = verify_token(token)

    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        raise TokenInvalidError(message="Invalid token: missing user_id")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise TokenInvalidError(
            message="Invalid token: unknown role",
            role=payload.get("role"),
        )

    return Principal(user_id=user_id, role=role)
