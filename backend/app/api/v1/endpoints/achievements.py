# backend/app/api/v1/endpoints/achievements.py
from fastapi import APIRouter, Depends

from backend.app.api import deps
from backend.app.models.user import User
from backend.app.schemas.achievement import AchievementProgress, AchievementResponse, AchievementSyncRequest
from backend.app.services.achievements import AchievementService

router = APIRouter()


@router.get("/{game_id}", response_model=AchievementResponse)
async def read_achievements(
        game_id: int,
        current_user: User = Depends(deps.get_current_user),
        service: AchievementService = Depends(deps.get_achievement_service),
):
    """Best available achievements: Steam, then RetroAchievements, then stored rows."""
    return await service.get_achievements(current_user.id, game_id)


@router.post("/{game_id}/sync", response_model=AchievementResponse)
async def sync_achievements(
        game_id: int,
        sync_in: AchievementSyncRequest,
        current_user: User = Depends(deps.get_current_user),
        service: AchievementService = Depends(deps.get_achievement_service),
):
    return await service.sync_achievements(current_user.id, game_id, sync_in.source)


@router.get("/{game_id}/progress", response_model=AchievementProgress)
async def read_progress(
        game_id: int,
        current_user: User = Depends(deps.get_current_user),
        service: AchievementService = Depends(deps.get_achievement_service),
):
    return await service.get_progress(current_user.id, game_id)
