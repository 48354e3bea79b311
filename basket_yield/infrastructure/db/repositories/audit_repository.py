"""
Audit Event Repository
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket_yield.domain.models import AuditEvent
from basket_yield.infrastructure.db.models import AuditEventModel
from basket_yield.utils.time import to_db


class AuditEventRepository:
    """Repository for audit events (insert-only)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, event: AuditEvent, data_hash: str) -> int:
        model = AuditEventModel(
            event_type=event.event_type.value,
            user_id=event.user_id,
            basket_id=event.basket_id,
            data_hash=data_hash,
            message=event.message,
            payload=event.payload,
            created_at=to_db(event.ts),
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_recent(self, limit: int = 50, event_type: Optional[str] = None) -> List[AuditEventModel]:
        stmt = select(AuditEventModel)
        if event_type:
            stmt = stmt.where(AuditEventModel.event_type == event_type)
        result = await self.session.execute(
            stmt.order_by(AuditEventModel.created_at.desc(), AuditEventModel.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
