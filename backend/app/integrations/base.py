# backend/app/integrations/base.py
"""
Contract shared by the achievement providers.

The provider set is closed: Steam and RetroAchievements are the only
live sources, and the order they are tried in lives in
services/achievements.py.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, List, Mapping, Optional


class SourceApi(str, Enum):
    STEAM = "steam"
    RETROACHIEVEMENTS = "retroachievements"
    RAWG = "rawg"
    MANUAL = "manual"


@dataclass(frozen=True)
class NormalizedAchievement:
    """Provider-independent shape of one achievement plus the caller's unlock state."""

    external_id: str
    name: str
    description: str = ""
    icon_url: Optional[str] = None
    rarity_percentage: Optional[float] = None
    unlocked: bool = False
    unlock_time: Optional[datetime] = None
    points: Optional[int] = None


@dataclass(frozen=True)
class SourceAccount:
    """Who we are fetching for on the provider side."""

    account_id: str
    token: Optional[str] = None

    def __repr__(self) -> str:
        return f"SourceAccount(account_id={self.account_id!r})"


class AchievementSource(ABC):
    source: ClassVar[SourceApi]
    # Name of the user_api_credentials.service row holding the account
    credential_service: ClassVar[str]
    # Attribute on Game carrying this provider's id
    game_id_attribute: ClassVar[str]

    @abstractmethod
    def account_from_credentials(self, credentials: Mapping[str, Any]) -> SourceAccount:
        """Build the provider account from a decrypted credential payload."""

    @abstractmethod
    async def fetch_achievements(
        self, external_game_id: int, account: SourceAccount
    ) -> List[NormalizedAchievement]:
        """Fetch every achievement of a game with the account's unlock state."""
