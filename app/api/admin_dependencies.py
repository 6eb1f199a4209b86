"""
Admin authentication dependencies for protecting admin routes.

Provides FastAPI dependencies for bearer token validation and admin checks.
Failures raise app.exceptions errors, rendered as the JSON error envelope.
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.session import get_write_db
from app.exceptions import AuthorizationError
from app.models.domain import AdminIdentity, CallerIdentity
from app.observability.logging import get_logger
from app.services.admin_auth import AdminAuthService

logger = get_logger(__name__)


def get_admin_auth_service() -> AdminAuthService:
    """Get admin auth service instance."""
    settings = get_settings()
    return AdminAuthService(
        jwt_secret=settings.JWT_SECRET,
        jwt_expire_hours=settings.jwt_expire_hours,
    )


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_caller(
    authorization: str | None = Header(None),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> CallerIdentity:
    """
    Resolve the authenticated caller.

    Raises:
        AuthenticationError(401): No token provided or token is invalid
    """
    return auth_service.resolve_caller(bearer_token(authorization))


async def get_current_admin(
    caller: CallerIdentity = Depends(get_current_caller),
    db: AsyncSession = Depends(get_write_db),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminIdentity:
    """
    Get current authenticated admin.

    Raises:
        AuthenticationError(401): Caller could not be resolved
        AuthorizationError(403): Caller is not in the admin set
    """
    admin = await auth_service.require_admin(db, caller)
    logger.debug("admin_auth_success", admin_id=str(admin.admin_id), email=admin.email)
    return admin


async def require_super_admin(
    admin: AdminIdentity = Depends(get_current_admin),
) -> AdminIdentity:
    """
    Require super admin privileges.

    Raises:
        AuthorizationError(403): Admin is not a super admin
    """
    if not admin.is_super_admin:
        logger.warning("admin_auth_insufficient_role", email=admin.email)
        raise AuthorizationError("admin:super", "Super admin privileges required")
    return admin
