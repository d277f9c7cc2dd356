from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from counter_queue.models import Admin
from counter_queue.repositories.base import BaseRepository


class AdminRepository(BaseRepository[Admin]):
    def __init__(self, session: AsyncSession):
        super().__init__(Admin, session)

    async def get_by_username(self, username: str) -> Admin | None:
        result = await self.session.execute(select(self.model).where(self.model.username == username))
        return result.scalars().first()
