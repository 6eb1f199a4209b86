"""
Admin authentication service - bearer tokens and the admin set.

Caller resolution is two explicit capability checks:
    resolve_caller(token)       -> CallerIdentity   (or AuthenticationError, 401)
    require_admin(db, caller)   -> AdminIdentity    (or AuthorizationError, 403)
"""

from datetime import UTC, datetime, timedelta

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import AdminUser
from app.exceptions import (
    AdminSignupClosedError,
    AuthenticationError,
    AuthorizationError,
    DuplicateAdminError,
    WriteVerificationError,
)
from app.models.domain import AdminIdentity, CallerIdentity
from app.observability.logging import get_logger

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"
INVALID_CREDENTIALS = "Invalid email or password"


def to_admin_identity(admin: AdminUser, user_id: str | None = None) -> AdminIdentity:
    return AdminIdentity(
        admin_id=admin.id,
        user_id=user_id or str(admin.id),
        email=admin.email,
        is_super_admin=admin.is_super_admin,
    )


class AdminAuthService:
    """Admin authentication service."""

    def __init__(self, jwt_secret: str, jwt_expire_hours: int = 24) -> None:
        self.jwt_secret = jwt_secret
        self.jwt_expire_hours = jwt_expire_hours
        self.password_hasher = PasswordHasher()

    @property
    def expires_in_seconds(self) -> int:
        return self.jwt_expire_hours * 3600

    # ========================================================================
    # Tokens
    # ========================================================================

    def create_access_token(self, admin: AdminUser) -> str:
        """Create JWT token for admin user."""
        now = datetime.now(UTC)
        payload = {
            "sub": str(admin.id),
            "email": admin.email,
            "iat": now,
            "exp": now + timedelta(hours=self.jwt_expire_hours),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=JWT_ALGORITHM)

    def resolve_caller(self, token: str | None) -> CallerIdentity:
        """
        Resolve a bearer token to the calling user.

        Raises:
            AuthenticationError: Missing, expired or malformed token
        """
        if not token:
            raise AuthenticationError("Missing authorization header")

        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_aud": False, "require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            raise AuthenticationError("Token expired") from None
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            raise AuthenticationError("Invalid token") from None

        email = payload.get("email")
        if not isinstance(email, str) or not email:
            raise AuthenticationError("Token has no email claim")

        try:
            return CallerIdentity(user_id=str(payload["sub"]), email=email.lower())
        except ValueError as e:
            raise AuthenticationError(str(e)) from None

    async def require_admin(self, db: AsyncSession, caller: CallerIdentity) -> AdminIdentity:
        """
        Confirm the caller is in the admin set.

        Raises:
            AuthorizationError: Caller is authenticated but not an admin
        """
        stmt = select(AdminUser).where(AdminUser.email == caller.email)
        admin = (await db.execute(stmt)).scalar_one_or_none()
        if admin is None:
            logger.warning("admin_check_failed", email=caller.email)
            raise AuthorizationError("admin", "Admin access required")
        return to_admin_identity(admin, caller.user_id)

    # ========================================================================
    # Admin accounts
    # ========================================================================

    async def signup(self, db: AsyncSession, email: str, password: str) -> AdminUser:
        """
        Register the first admin (as super admin).

        Raises:
            AdminSignupClosedError: An admin already exists
        """
        existing = (await db.execute(select(func.count()).select_from(AdminUser))).scalar_one()
        if existing > 0:
            logger.warning("admin_signup_closed", email=email)
            raise AdminSignupClosedError()

        admin = await self._insert_admin(db, email, password, is_super_admin=True)
        logger.info("first_admin_created", email=admin.email, admin_id=str(admin.id))
        return admin

    async def signin(self, db: AsyncSession, email: str, password: str) -> tuple[str, AdminUser]:
        """
        Check credentials and issue a bearer token.

        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        stmt = select(AdminUser).where(AdminUser.email == email.lower())
        admin = (await db.execute(stmt)).scalar_one_or_none()
        if admin is None:
            logger.warning("admin_signin_unknown_email", email=email)
            raise AuthenticationError(INVALID_CREDENTIALS)

        try:
            self.password_hasher.verify(admin.password_hash, password)
        except (VerifyMismatchError, InvalidHashError):
            logger.warning("admin_signin_bad_password", admin_id=str(admin.id))
            raise AuthenticationError(INVALID_CREDENTIALS) from None

        if self.password_hasher.check_needs_rehash(admin.password_hash):
            admin.password_hash = self.password_hasher.hash(password)

        admin.last_login_at = datetime.now(UTC)
        await db.commit()

        logger.info("admin_signin_success", admin_id=str(admin.id), email=admin.email)
        return self.create_access_token(admin), admin

    async def create_admin(
        self,
        db: AsyncSession,
        creator: AdminIdentity,
        email: str,
        password: str,
        is_super_admin: bool = False,
    ) -> AdminUser:
        """
        Add an admin account.

        Raises:
            AuthorizationError: Creator is not a super admin
            DuplicateAdminError: Email already registered
        """
        if not creator.is_super_admin:
            raise AuthorizationError("admin:create", "Only super admins can create admin accounts")

        admin = await self._insert_admin(db, email, password, is_super_admin=is_super_admin)
        logger.info(
            "admin_created",
            email=admin.email,
            admin_id=str(admin.id),
            is_super_admin=is_super_admin,
            created_by=creator.email,
        )
        return admin

    async def _insert_admin(
        self, db: AsyncSession, email: str, password: str, is_super_admin: bool
    ) -> AdminUser:
        admin = AdminUser(
            email=email.lower(),
            password_hash=self.password_hasher.hash(password),
            is_super_admin=is_super_admin,
        )
        db.add(admin)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise DuplicateAdminError(email.lower()) from None

        if await db.get(AdminUser, admin.id) is None:
            raise WriteVerificationError(f"Admin {admin.id} not found after insert")

        await db.commit()
        return admin
