"""
User Repository
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket_yield.domain.models import UserAccount
from basket_yield.infrastructure.db.models import UserModel
from basket_yield.utils.time import to_utc


class UserRepository:
    """Repository for registered users"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: int) -> Optional[UserAccount]:
        model = await self.session.get(UserModel, user_id)
        return self._to_domain(model)

    async def get_by_wallet(self, wallet_address: str) -> Optional[UserAccount]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.wallet_address == wallet_address.lower())
        )
        return self._to_domain(result.scalars().first())

    async def create(self, wallet_address: str, basket_id: int) -> UserAccount:
        model = UserModel(wallet_address=wallet_address.lower(), selected_basket=basket_id)
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def update_basket(self, user_id: int, basket_id: int) -> bool:
        """Change the basket of record; returns False if the user does not exist"""
        model = await self.session.get(UserModel, user_id)
        if model is None:
            return False
        model.selected_basket = basket_id
        await self.session.flush()
        return True

    @staticmethod
    def _to_domain(model: Optional[UserModel]) -> Optional[UserAccount]:
        if model is None:
            return None
        return UserAccount(
            id=model.id,
            wallet_address=model.wallet_address,
            selected_basket=model.selected_basket,
            created_at=to_utc(model.created_at),
        )
