# waveorder/db/repositories/subscription_repository.py
from typing import Optional
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.db.models.subscription import Subscription
from waveorder.db.models.user import User
from waveorder.db.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    """Repository for the local Stripe subscription cache"""

    def __init__(self, session: AsyncSession):
        super().__init__(Subscription, session)

    async def link_owner(self, user_id: str, subscription_id: Optional[str]) -> None:
        """Point a user at a subscription record (None unlinks)"""
        await self.session.execute(
            update(User).where(User.id == user_id).values(subscription_id=subscription_id)
        )
        await self.session.commit()
