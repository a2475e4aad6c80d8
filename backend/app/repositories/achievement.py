# backend/app/repositories/achievement.py
"""
Achievement catalog and per-user unlock state.

Catalog rows are keyed on (game_id, platform_id, achievement_id) and
unlock rows on (user_id, achievement_id); every write is an upsert on
those keys, so re-running a sync converges instead of duplicating.
"""
import logging
from datetime import datetime
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.base import transaction
from backend.app.db.upsert import classify_integrity_error, upsert_insert
from backend.app.models.achievement import Achievement, UserAchievement

logger = logging.getLogger(__name__)

# Columns overwritten when a catalog row already exists
CATALOG_UPDATE_COLUMNS = (
    "name",
    "description",
    "icon_url",
    "rarity_percentage",
    "points",
    "source_api",
    "external_id",
)

# Rows per INSERT statement; keeps bound parameters under the driver limits
UPSERT_CHUNK_SIZE = 1000


class UnlockStatus(NamedTuple):
    unlocked: bool
    unlock_date: Optional[datetime] = None


class AchievementWithStatus(NamedTuple):
    achievement: Achievement
    unlocked: bool
    unlock_date: Optional[datetime]


class AchievementRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_game_and_source(self, game_id: int, source_api: str) -> List[Achievement]:
        """Rows for a game from one source, most recently updated first."""
        result = await self.db.execute(
            select(Achievement)
            .where(Achievement.game_id == game_id, Achievement.source_api == source_api)
            .order_by(Achievement.updated_at.desc(), Achievement.id.desc())
        )
        return list(result.scalars().all())

    async def get_user_achievements(
        self, user_id: int, game_id: int, platform_id: int
    ) -> List[AchievementWithStatus]:
        """Catalog rows left-joined with this user's unlock rows (missing → locked)."""
        stmt = (
            select(Achievement, UserAchievement.unlocked, UserAchievement.unlock_date)
            .outerjoin(
                UserAchievement,
                and_(
                    UserAchievement.achievement_id == Achievement.id,
                    UserAchievement.user_id == user_id,
                ),
            )
            .where(Achievement.game_id == game_id, Achievement.platform_id == platform_id)
            .order_by(Achievement.id)
        )
        result = await self.db.execute(stmt)
        return [
            AchievementWithStatus(achievement, bool(unlocked), unlock_date)
            for achievement, unlocked, unlock_date in result.all()
        ]

    async def count_unlocked(self, user_id: int, game_id: int, platform_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(UserAchievement)
            .join(Achievement, UserAchievement.achievement_id == Achievement.id)
            .where(
                UserAchievement.user_id == user_id,
                UserAchievement.unlocked.is_(True),
                Achievement.game_id == game_id,
                Achievement.platform_id == platform_id,
            )
        )
        return (await self.db.scalar(stmt)) or 0

    async def count_total(self, game_id: int, platform_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(Achievement)
            .where(Achievement.game_id == game_id, Achievement.platform_id == platform_id)
        )
        return (await self.db.scalar(stmt)) or 0

    async def upsert_achievements_with_progress(
        self,
        records: Sequence[Mapping],
        user_id: int,
        unlock_status: Mapping[str, UnlockStatus],
    ) -> List[Achievement]:
        """
        Upsert catalog rows and this user's unlock rows in one transaction.

        Unlock rows are derived from the rows RETURNED by the catalog upsert,
        and only for achievements whose external id is in ``unlock_status``.
        Any failure rolls back both steps.

        Raises:
            ConflictError: a unique constraint other than the upsert target fired
            InvalidDataError: a NOT NULL column was missing
        """
        if not records:
            return []

        try:
            async with transaction(self.db):
                stored = await self._upsert_catalog(records)

                unlock_rows = []
                for row in stored:
                    key = row.external_id if row.external_id is not None else row.achievement_id
                    status = unlock_status.get(key)
                    if status is None:
                        continue
                    unlock_rows.append({
                        "user_id": user_id,
                        "achievement_id": row.id,
                        "unlocked": status.unlocked,
                        "unlock_date": status.unlock_date,
                    })

                if unlock_rows:
                    await self._upsert_unlocks(unlock_rows)
        except IntegrityError as exc:
            domain_error = classify_integrity_error(exc)
            if domain_error is None:
                raise
            logger.warning("Achievement upsert rejected for user %s: %s", user_id, domain_error.message)
            raise domain_error from exc

        logger.debug(
            "Stored %d achievements and %d unlock rows for user %s",
            len(stored), len(unlock_rows), user_id,
        )
        return stored

    async def _upsert_catalog(self, records: Sequence[Mapping]) -> List[Achievement]:
        stored: List[Achievement] = []
        for start in range(0, len(records), UPSERT_CHUNK_SIZE):
            chunk = records[start:start + UPSERT_CHUNK_SIZE]
            stored.extend(await self._upsert_catalog_chunk(chunk))
        return stored

    async def _upsert_catalog_chunk(self, records: Sequence[Mapping]) -> List[Achievement]:
        stmt = upsert_insert(self.db, Achievement).values([dict(r) for r in records])
        set_: Dict[str, object] = {col: stmt.excluded[col] for col in CATALOG_UPDATE_COLUMNS}
        set_["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(
            index_elements=["game_id", "platform_id", "achievement_id"],
            set_=set_,
        ).returning(Achievement)

        result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
        return list(result.all())

    async def _upsert_unlocks(self, rows: List[dict]) -> None:
        for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
            stmt = upsert_insert(self.db, UserAchievement).values(rows[start:start + UPSERT_CHUNK_SIZE])
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "achievement_id"],
                set_={
                    "unlocked": stmt.excluded.unlocked,
                    "unlock_date": stmt.excluded.unlock_date,
                },
            )
            await self.db.execute(stmt)
