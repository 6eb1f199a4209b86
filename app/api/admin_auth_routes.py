"""
Admin authentication routes.

Email/password signup (first admin only), signin and admin creation.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.admin_dependencies import get_admin_auth_service, require_super_admin
from app.db.models import AdminUser
from app.db.session import get_write_db
from app.models.api import (
    AdminCreateRequest,
    AdminCredentialsRequest,
    AdminResponse,
    AdminSigninResponse,
    AdminSignupResponse,
)
from app.models.domain import AdminIdentity
from app.services.admin_auth import AdminAuthService

router = APIRouter(prefix="/admin/auth", tags=["admin-auth"])


def to_admin_response(admin: AdminUser) -> AdminResponse:
    return AdminResponse(id=admin.id, email=admin.email, is_super_admin=admin.is_super_admin)


@router.post(
    "/signup",
    response_model=AdminSignupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def signup(
    request: AdminCredentialsRequest,
    db: AsyncSession = Depends(get_write_db),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminSignupResponse:
    """Create the first admin account. Closed once any admin exists."""
    admin = await auth_service.signup(db, request.email, request.password)
    return AdminSignupResponse(admin=to_admin_response(admin))


@router.post("/signin", response_model=AdminSigninResponse)
async def signin(
    request: AdminCredentialsRequest,
    db: AsyncSession = Depends(get_write_db),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminSigninResponse:
    """Exchange admin credentials for a bearer token."""
    token, admin = await auth_service.signin(db, request.email, request.password)
    return AdminSigninResponse(
        access_token=token,
        expires_in=auth_service.expires_in_seconds,
        admin=to_admin_response(admin),
    )


@router.post(
    "/admins",
    response_model=AdminSignupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_admin(
    request: AdminCreateRequest,
    creator: AdminIdentity = Depends(require_super_admin),
    db: AsyncSession = Depends(get_write_db),
    auth_service: AdminAuthService = Depends(get_admin_auth_service),
) -> AdminSignupResponse:
    """Add another admin account (super admins only)."""
    admin = await auth_service.create_admin(
        db, creator, request.email, request.password, is_super_admin=request.is_super_admin
    )
    return AdminSignupResponse(admin=to_admin_response(admin))
