# backend/app/services/achievements.py
"""
Achievement synchronization engine.

get_achievements() walks a fixed priority chain:

    Steam  →  RetroAchievements  →  cached rows (steam, retroachievements, rawg, manual)  →  empty

Each live step produces a SyncAttempt (response or skip reason). A live
sync that fails is logged and skipped, never raised; one that succeeds
ends the chain even when it returned no achievements. The cached step
reads only the database, so the chain always returns something.

sync_achievements() is the explicit single-source variant: it raises
ValidationError / NotFoundError because the caller asked for that source.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import DomainError, NotFoundError, ValidationError
from backend.app.integrations.base import AchievementSource, NormalizedAchievement, SourceApi
from backend.app.repositories.achievement import (
    AchievementRepository,
    AchievementWithStatus,
    UnlockStatus,
)
from backend.app.repositories.game import GameRepository, PlatformRepository
from backend.app.schemas.achievement import AchievementItem, AchievementProgress, AchievementResponse
from backend.app.services.credentials import CredentialResolver

logger = logging.getLogger(__name__)

# Richer metadata first: Steam has exact unlock times and global rarity
LIVE_SOURCE_ORDER = (SourceApi.STEAM, SourceApi.RETROACHIEVEMENTS)
CACHED_SOURCE_ORDER = (SourceApi.STEAM, SourceApi.RETROACHIEVEMENTS, SourceApi.RAWG, SourceApi.MANUAL)
NON_SYNCABLE_SOURCES = (SourceApi.RAWG, SourceApi.MANUAL)

SOURCE_LABELS = {
    SourceApi.STEAM: "Steam",
    SourceApi.RETROACHIEVEMENTS: "RetroAchievements",
}
GAME_ID_LABELS = {
    SourceApi.STEAM: "Steam App ID",
    SourceApi.RETROACHIEVEMENTS: "RetroAchievements game ID",
}


class GameIds(NamedTuple):
    """Plain snapshot of a library game; a rolled-back sync expires ORM instances."""

    id: int
    steam_app_id: Optional[int]
    retro_game_id: Optional[int]


@dataclass(frozen=True)
class SyncAttempt:
    source: SourceApi
    response: Optional[AchievementResponse] = None
    skip_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.response is not None


def first_successful(attempts: Iterable[SyncAttempt]) -> Optional[AchievementResponse]:
    """The first attempt that produced a response, in chain order."""
    for attempt in attempts:
        if attempt.succeeded:
            return attempt.response
    return None


def progress_percentage(unlocked: int, total: int) -> int:
    """Whole-number completion percentage, halves rounded up; 0 when there is nothing to unlock."""
    if total <= 0:
        return 0
    return int(math.floor(unlocked / total * 100 + 0.5))


def _dedupe(achievements: Sequence[NormalizedAchievement]) -> List[NormalizedAchievement]:
    by_id: Dict[str, NormalizedAchievement] = {}
    for achievement in achievements:
        by_id[achievement.external_id] = achievement
    return list(by_id.values())


class AchievementService:
    def __init__(
        self,
        db: AsyncSession,
        sources: Sequence[AchievementSource],
        resolver: CredentialResolver,
        config: Settings = default_settings,
    ):
        self.games = GameRepository(db)
        self.platforms = PlatformRepository(db)
        self.achievements = AchievementRepository(db)
        self.resolver = resolver
        self.config = config
        self.sources: Dict[SourceApi, AchievementSource] = {s.source: s for s in sources}

    # ─────────────────────────────────────────────────────────────
    # Public operations
    # ─────────────────────────────────────────────────────────────

    async def get_achievements(self, user_id: int, game_id: int) -> AchievementResponse:
        """
        Achievements for a library game via the priority chain.

        Raises:
            NotFoundError: the game does not exist
        """
        logger.debug("Getting achievements for user %s game %s", user_id, game_id)
        game = await self._get_game(game_id)

        attempts: List[SyncAttempt] = []
        for source in LIVE_SOURCE_ORDER:
            attempt = await self._attempt_sync(user_id, game, source)
            attempts.append(attempt)
            if attempt.succeeded:
                break

        response = first_successful(attempts)
        if response is not None:
            return response

        return await self._get_cached_achievements(user_id, game.id)

    async def sync_achievements(self, user_id: int, game_id: int, source: str) -> AchievementResponse:
        """
        Fetch achievements from one source and persist them.

        Raises:
            NotFoundError: game, credentials or attribution platform missing
            ValidationError: unsupported source, or the game lacks that source's id
        """
        logger.info("Syncing achievements for user %s game %s from %s", user_id, game_id, source)
        game = await self._get_game(game_id)
        return await self._sync(user_id, game, self._parse_source(source))

    async def get_progress(self, user_id: int, game_id: int) -> AchievementProgress:
        """Unlocked/total counts from stored rows only; no provider calls."""
        game = await self._get_game(game_id)

        platform_id = None
        if game.steam_app_id is not None:
            platform = await self.platforms.find_by_igdb_id(self.config.STEAM_PLATFORM_IGDB_ID)
            platform_id = platform.id if platform else None

        if platform_id is None and game.retro_game_id is not None:
            existing = await self.achievements.find_by_game_and_source(
                game.id, SourceApi.RETROACHIEVEMENTS.value
            )
            if existing:
                platform_id = existing[0].platform_id

        if platform_id is None:
            return AchievementProgress(unlocked=0, total=0, percentage=0)

        unlocked = await self.achievements.count_unlocked(user_id, game.id, platform_id)
        total = await self.achievements.count_total(game.id, platform_id)
        return AchievementProgress(
            unlocked=unlocked,
            total=total,
            percentage=progress_percentage(unlocked, total),
        )

    # ─────────────────────────────────────────────────────────────
    # Chain steps
    # ─────────────────────────────────────────────────────────────

    async def _attempt_sync(self, user_id: int, game: GameIds, source: SourceApi) -> SyncAttempt:
        adapter = self.sources.get(source)
        if adapter is None:
            return SyncAttempt(source, skip_reason="source not configured")

        if getattr(game, adapter.game_id_attribute) is None:
            return SyncAttempt(source, skip_reason=f"game has no {GAME_ID_LABELS[source]}")

        try:
            response = await self._sync(user_id, game, source)
        except DomainError as exc:
            logger.info("%s achievements not available for game %s: %s", source.value, game.id, exc.message)
            return SyncAttempt(source, skip_reason=exc.message)
        except Exception as exc:
            logger.warning("%s sync failed for game %s", source.value, game.id, exc_info=True)
            return SyncAttempt(source, skip_reason=str(exc) or type(exc).__name__)

        return SyncAttempt(source, response=response)

    async def _get_cached_achievements(self, user_id: int, game_id: int) -> AchievementResponse:
        for source in CACHED_SOURCE_ORDER:
            rows = await self.achievements.find_by_game_and_source(game_id, source.value)
            if not rows:
                continue
            with_status = await self.achievements.get_user_achievements(user_id, game_id, rows[0].platform_id)
            logger.debug("Serving cached %s achievements for game %s", source.value, game_id)
            return self._format_cached(source, with_status)

        return AchievementResponse(source=SourceApi.MANUAL.value, achievements=[], total=0, unlocked=0)

    # ─────────────────────────────────────────────────────────────
    # Single-source sync
    # ─────────────────────────────────────────────────────────────

    async def _sync(self, user_id: int, game: GameIds, source: SourceApi) -> AchievementResponse:
        adapter = self.sources.get(source)
        if adapter is None:
            raise ValidationError(f"Sync not supported for source: {source.value}")

        external_game_id = getattr(game, adapter.game_id_attribute)
        if external_game_id is None:
            raise ValidationError(f"Game does not have a {GAME_ID_LABELS[source]}")

        platform_id = await self._attribution_platform_id(game, source)

        credentials = await self.resolver.resolve(user_id, adapter.credential_service)
        if credentials is None:
            raise NotFoundError(f"{SOURCE_LABELS[source]} credentials")
        account = adapter.account_from_credentials(credentials)

        normalized = _dedupe(await adapter.fetch_achievements(external_game_id, account))
        logger.debug("%s returned %d achievements for game %s", source.value, len(normalized), game.id)

        if normalized:
            await self._store(game.id, platform_id, source, normalized, user_id)

        return self._format_live(source, normalized)

    def _parse_source(self, source: str) -> SourceApi:
        try:
            source_api = SourceApi(source)
        except ValueError:
            raise ValidationError(f"Unknown achievement source: {source}")
        if source_api in NON_SYNCABLE_SOURCES:
            raise ValidationError(f"Sync not supported for source: {source}")
        return source_api

    async def _attribution_platform_id(self, game: GameIds, source: SourceApi) -> int:
        if source == SourceApi.STEAM:
            platform = await self.platforms.find_by_igdb_id(self.config.STEAM_PLATFORM_IGDB_ID)
            if platform is None:
                raise NotFoundError("Steam platform", self.config.STEAM_PLATFORM_IGDB_ID)
            return platform.id

        existing = await self.achievements.find_by_game_and_source(game.id, source.value)
        if existing:
            return existing[0].platform_id

        family = await self.platforms.find_by_family(self.config.RETROACHIEVEMENTS_PLATFORM_FAMILY)
        if family:
            return family[0].id

        if self.config.RETROACHIEVEMENTS_FALLBACK_PLATFORM:
            platform = await self.platforms.find_by_name(self.config.RETROACHIEVEMENTS_FALLBACK_PLATFORM)
            if platform is not None:
                return platform.id

        if self.config.RETROACHIEVEMENTS_ALLOW_ANY_PLATFORM:
            platforms = await self.platforms.list()
            if platforms:
                return platforms[0].id

        raise ValidationError("No platform available for RetroAchievements")

    async def _store(
        self,
        game_id: int,
        platform_id: int,
        source: SourceApi,
        achievements: Sequence[NormalizedAchievement],
        user_id: int,
    ) -> None:
        records = [
            {
                "game_id": game_id,
                "platform_id": platform_id,
                "achievement_id": a.external_id,
                "name": a.name,
                "description": a.description,
                "icon_url": a.icon_url or None,
                "rarity_percentage": a.rarity_percentage,
                "points": a.points,
                "source_api": source.value,
                "external_id": a.external_id,
            }
            for a in achievements
        ]
        unlock_status = {a.external_id: UnlockStatus(a.unlocked, a.unlock_time) for a in achievements}

        stored = await self.achievements.upsert_achievements_with_progress(records, user_id, unlock_status)
        logger.info(
            "Stored %d %s achievements for game %s (%d unlocked by user %s)",
            len(stored), source.value, game_id, sum(1 for a in achievements if a.unlocked), user_id,
        )

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_game(self, game_id: int) -> GameIds:
        game = await self.games.find_by_id(game_id)
        if game is None:
            raise NotFoundError("Game", game_id)
        return GameIds(game.id, game.steam_app_id, game.retro_game_id)

    @staticmethod
    def _format_live(source: SourceApi, achievements: Sequence[NormalizedAchievement]) -> AchievementResponse:
        items = [
            AchievementItem(
                id=a.external_id,
                name=a.name,
                description=a.description,
                icon_url=a.icon_url or None,
                rarity_percentage=a.rarity_percentage,
                points=a.points,
                unlocked=a.unlocked,
                unlock_date=a.unlock_time,
            )
            for a in achievements
        ]
        return AchievementResponse(
            source=source.value,
            achievements=items,
            total=len(items),
            unlocked=sum(1 for item in items if item.unlocked),
        )

    @staticmethod
    def _format_cached(source: SourceApi, rows: Sequence[AchievementWithStatus]) -> AchievementResponse:
        items = [
            AchievementItem(
                id=row.achievement.achievement_id,
                name=row.achievement.name or "Unknown",
                description=row.achievement.description or "",
                icon_url=row.achievement.icon_url,
                rarity_percentage=row.achievement.rarity_percentage,
                points=row.achievement.points,
                unlocked=row.unlocked,
                unlock_date=row.unlock_date,
            )
            for row in rows
        ]
        return AchievementResponse(
            source=source.value,
            achievements=items,
            total=len(items),
            unlocked=sum(1 for item in items if item.unlocked),
        )
