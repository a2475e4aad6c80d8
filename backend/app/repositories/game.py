# backend/app/repositories/game.py
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.game import Game, Platform


class GameRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, game_id: int) -> Optional[Game]:
        result = await self.db.execute(select(Game).where(Game.id == game_id))
        return result.scalars().first()


class PlatformRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_igdb_id(self, igdb_id: int) -> Optional[Platform]:
        result = await self.db.execute(select(Platform).where(Platform.igdb_id == igdb_id))
        return result.scalars().first()

    async def find_by_name(self, name: str) -> Optional[Platform]:
        result = await self.db.execute(select(Platform).where(Platform.name == name))
        return result.scalars().first()

    async def find_by_family(self, family: str) -> List[Platform]:
        result = await self.db.execute(
            select(Platform).where(Platform.platform_family == family).order_by(Platform.id)
        )
        return list(result.scalars().all())

    async def list(self) -> List[Platform]:
        result = await self.db.execute(select(Platform).order_by(Platform.id))
        return list(result.scalars().all())
