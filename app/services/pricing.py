"""
Pricing Catalog - Package price lookup and maintenance.

A missing or inactive (tier, duration) pair prices at zero, which means
"no expectation": the payment is then classified against zero.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import SubscriptionPackage
from app.exceptions import WriteVerificationError
from app.models.api import DurationType, PackageResponse, SubscriptionTier
from app.models.domain import ZERO
from app.observability.logging import get_logger

logger = get_logger(__name__)


def _to_response(package: SubscriptionPackage) -> PackageResponse:
    return PackageResponse(
        tier_name=SubscriptionTier(package.tier_name),
        duration_type=DurationType(package.duration_type),
        price=package.price,
        is_active=package.is_active,
        display_order=package.display_order,
    )


class PricingCatalog:
    """Read and maintain subscription package prices."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_price(
        self,
        tier: SubscriptionTier | str | None,
        duration: DurationType | str | None,
    ) -> Decimal:
        """Price for an active (tier, duration) package, or 0 when there is none."""
        if tier is None or duration is None:
            return ZERO

        stmt = select(SubscriptionPackage.price).where(
            SubscriptionPackage.tier_name == SubscriptionTier(tier).value,
            SubscriptionPackage.duration_type == DurationType(duration).value,
            SubscriptionPackage.is_active.is_(True),
        )
        price = (await self.session.execute(stmt)).scalar_one_or_none()

        if price is None:
            logger.warning(
                "package_price_not_found",
                tier=SubscriptionTier(tier).value,
                duration=DurationType(duration).value,
            )
            return ZERO
        return Decimal(price)

    async def list_packages(self, active_only: bool = True) -> list[PackageResponse]:
        """List packages in display order."""
        stmt = select(SubscriptionPackage).order_by(
            SubscriptionPackage.display_order, SubscriptionPackage.tier_name
        )
        if active_only:
            stmt = stmt.where(SubscriptionPackage.is_active.is_(True))
        packages = (await self.session.execute(stmt)).scalars().all()
        return [_to_response(p) for p in packages]

    async def upsert_package(
        self,
        tier: SubscriptionTier,
        duration: DurationType,
        price: Decimal,
        is_active: bool = True,
        display_order: int = 0,
    ) -> PackageResponse:
        """Create or update the price for a (tier, duration) pair."""
        stmt = (
            select(SubscriptionPackage)
            .where(
                SubscriptionPackage.tier_name == tier.value,
                SubscriptionPackage.duration_type == duration.value,
            )
            .with_for_update()
        )
        package = (await self.session.execute(stmt)).scalar_one_or_none()

        if package is None:
            package = SubscriptionPackage(
                tier_name=tier.value,
                duration_type=duration.value,
                price=price,
                is_active=is_active,
                display_order=display_order,
            )
            self.session.add(package)
        else:
            package.price = price
            package.is_active = is_active
            package.display_order = display_order

        await self.session.flush()
        verified = await self.session.get(SubscriptionPackage, package.id)
        if verified is None or verified.price != price:
            raise WriteVerificationError(f"Package {tier.value}/{duration.value} not saved")

        await self.session.commit()
        logger.info(
            "package_price_updated",
            tier=tier.value,
            duration=duration.value,
            price=str(price),
            is_active=is_active,
        )
        return _to_response(verified)
