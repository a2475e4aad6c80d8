# backend/app/schemas/achievement.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AchievementItem(BaseModel):
    id: str
    name: str
    description: str = ""
    icon_url: Optional[str] = None
    rarity_percentage: Optional[float] = None
    points: Optional[int] = None
    unlocked: bool = False
    unlock_date: Optional[datetime] = None


class AchievementResponse(BaseModel):
    source: str
    achievements: List[AchievementItem] = Field(default_factory=list)
    total: int = 0
    unlocked: int = 0


class AchievementSyncRequest(BaseModel):
    # Checked by the service so unknown sources get a message naming them
    source: str = Field(..., min_length=1, max_length=32)


class AchievementProgress(BaseModel):
    unlocked: int
    total: int
    percentage: int
