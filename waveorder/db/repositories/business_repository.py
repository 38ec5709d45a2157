# waveorder/db/repositories/business_repository.py
from typing import Optional, List, Sequence
from datetime import timedelta
from sqlalchemy import select, update, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.core.constants import BusinessRole
from waveorder.db.base import utcnow
from waveorder.db.models.business import Business, BusinessUser
from waveorder.db.models.user import User
from waveorder.db.repositories.base import BaseRepository


class BusinessRepository(BaseRepository[Business]):
    """Repository for Business (tenant) operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Business, session)

    def _with_members(self):
        return (
            select(Business)
            .options(selectinload(Business.members).joinedload(BusinessUser.user).joinedload(User.subscription))
            .execution_options(populate_existing=True)
        )

    async def get_with_members(self, business_id: str) -> Optional[Business]:
        """Get business with members, their users and subscriptions loaded"""
        result = await self.session.execute(
            self._with_members().where(Business.id == business_id)
        )
        return result.unique().scalar_one_or_none()

    async def list_active_with_members(self, business_ids: Optional[Sequence[str]] = None) -> List[Business]:
        """Active businesses, newest first"""
        query = self._with_members().where(Business.is_active.is_(True))
        if business_ids:
            query = query.where(Business.id.in_(list(business_ids)))
        result = await self.session.execute(query.order_by(Business.created_at.desc()))
        return list(result.unique().scalars().all())

    @staticmethod
    def owner_of(business: Business) -> Optional[User]:
        """First OWNER member of an already-loaded business"""
        for member in business.members:
            if member.role == BusinessRole.OWNER.value:
                return member.user
        return None

    async def stamp_stripe_sync(self, business_id: str, status: str) -> None:
        """Record when and with what outcome Stripe sync last ran"""
        await self.session.execute(
            update(Business)
            .where(Business.id == business_id)
            .values(last_stripe_sync=utcnow(), stripe_sync_status=status)
        )
        await self.session.commit()

    async def try_acquire_sync_lock(self, business_id: str, ttl_seconds: int) -> bool:
        """Conditionally claim the per-business Stripe sync lock.

        The UPDATE only matches when no unexpired lock is held, so two
        concurrent callers cannot both see rowcount == 1.
        """
        now = utcnow()
        result = await self.session.execute(
            update(Business)
            .where(Business.id == business_id)
            .where(or_(Business.stripe_sync_locked_until.is_(None), Business.stripe_sync_locked_until < now))
            .values(stripe_sync_locked_until=now + timedelta(seconds=ttl_seconds))
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def release_sync_lock(self, business_id: str) -> None:
        await self.session.execute(
            update(Business)
            .where(Business.id == business_id)
            .values(stripe_sync_locked_until=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
