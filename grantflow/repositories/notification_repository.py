from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from grantflow.models.notification import Notification


class NotificationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, notification: Notification) -> Notification:
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def list_for_recipient(self, recipient_id: int, limit: int = 100) -> list[Notification]:
        res = await self.db.execute(
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .order_by(Notification.id.desc())
            .limit(limit)
        )
        return list(res.scalars().all())
