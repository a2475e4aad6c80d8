# backend/app/integrations/retroachievements.py
"""
RetroAchievements integration.

Each user stores their own {username, api_key}; there is no separate
account-linking step. One call (API_GetGameInfoAndUserProgress) returns
the whole catalog for a game together with the user's earned dates.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from backend.app.core.config import settings
from backend.app.core.errors import ValidationError
from backend.app.integrations.base import (
    AchievementSource,
    NormalizedAchievement,
    SourceAccount,
    SourceApi,
)
from backend.app.integrations.http import HttpClient
from backend.app.repositories.credential import UserCredentialRepository
from backend.app.security.encryption import CredentialVault

logger = logging.getLogger(__name__)

RA_SERVICE = "retroachievements"
RA_CREDENTIAL_TYPE = "api_key"
RA_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_ra_date(value: Optional[str]) -> Optional[datetime]:
    """RetroAchievements dates are naive UTC strings like '2023-01-15 12:34:56'."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, RA_DATE_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.debug("Unparseable RetroAchievements date %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RetroAchievementsApi:
    def __init__(self, http: HttpClient, base_url: str = None):
        self.http = http
        self.base_url = (base_url or settings.RETROACHIEVEMENTS_API_URL).rstrip("/")

    @staticmethod
    def _auth(username: str, api_key: str) -> Dict[str, str]:
        return {"z": username, "y": api_key}

    async def get_user_profile(self, username: str, api_key: str) -> Optional[Dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.base_url}/API_GetUserProfile.php",
            params={"u": username, **self._auth(username, api_key)},
        )
        return data or None

    async def get_game_info_and_user_progress(
        self, game_id: int, username: str, api_key: str
    ) -> Dict[str, Any]:
        data = await self.http.get_json(
            f"{self.base_url}/API_GetGameInfoAndUserProgress.php",
            params={"g": game_id, "u": username, **self._auth(username, api_key)},
        )
        return data or {}


class RetroAchievementsSource(AchievementSource):
    source = SourceApi.RETROACHIEVEMENTS
    credential_service = RA_SERVICE
    game_id_attribute = "retro_game_id"

    def __init__(self, api: RetroAchievementsApi, media_url: str = None):
        self.api = api
        self.media_url = (media_url or settings.RETROACHIEVEMENTS_MEDIA_URL).rstrip("/")

    def account_from_credentials(self, credentials: Mapping[str, Any]) -> SourceAccount:
        username = credentials.get("username")
        api_key = credentials.get("api_key")
        if not username or not api_key:
            raise ValidationError("Invalid RetroAchievements credentials format")
        return SourceAccount(account_id=username, token=api_key)

    def _badge_url(self, badge_name: Optional[str]) -> Optional[str]:
        if not badge_name:
            return None
        return f"{self.media_url}/Badge/{badge_name}.png"

    async def fetch_achievements(
        self, external_game_id: int, account: SourceAccount
    ) -> List[NormalizedAchievement]:
        try:
            progress = await self.api.get_game_info_and_user_progress(
                external_game_id, account.account_id, account.token
            )
        except Exception:
            logger.error(
                "Failed to fetch RetroAchievements progress for game %s", external_game_id, exc_info=True
            )
            return []

        raw = progress.get("Achievements") or {}
        entries = list(raw.values()) if isinstance(raw, dict) else list(raw)
        usable = [e for e in entries if e.get("ID") is not None]
        if len(usable) < len(entries):
            logger.warning(
                "Skipping %d RetroAchievements entries without an ID for game %s",
                len(entries) - len(usable), external_game_id,
            )
        entries = usable
        if not entries:
            return []

        total_players = progress.get("NumDistinctPlayersCasual") or 0
        entries.sort(key=lambda e: (e.get("DisplayOrder") or 0, int(e["ID"])))

        achievements = []
        for entry in entries:
            earned = entry.get("DateEarned")
            earned_hardcore = entry.get("DateEarnedHardcore")
            awarded = entry.get("NumAwarded") or 0
            achievements.append(NormalizedAchievement(
                external_id=str(entry["ID"]),
                name=entry.get("Title") or str(entry["ID"]),
                description=entry.get("Description") or "",
                icon_url=self._badge_url(entry.get("BadgeName")),
                rarity_percentage=(awarded / total_players * 100) if total_players else None,
                unlocked=bool(earned or earned_hardcore),
                unlock_time=parse_ra_date(earned or earned_hardcore),
                points=entry.get("Points"),
            ))
        return achievements


class RetroAchievementsAccounts:
    """Validate, store and remove a user's RetroAchievements API key."""

    def __init__(self, api: RetroAchievementsApi, credentials: UserCredentialRepository, vault: CredentialVault):
        self.api = api
        self.credentials = credentials
        self.vault = vault

    async def validate_credentials(self, username: str, api_key: str) -> bool:
        try:
            profile = await self.api.get_user_profile(username, api_key)
        except Exception as exc:
            logger.warning("RetroAchievements credential validation failed: %s", exc)
            return False
        if not profile:
            return False
        return str(profile.get("User", "")).lower() == username.lower()

    async def save_credentials(self, user_id: int, username: str, api_key: str) -> None:
        if not await self.validate_credentials(username, api_key):
            raise ValidationError("Invalid RetroAchievements credentials")

        await self.credentials.upsert(
            user_id,
            service=RA_SERVICE,
            credential_type=RA_CREDENTIAL_TYPE,
            encrypted_credentials=self.vault.encrypt({"username": username, "api_key": api_key}),
            is_active=True,
            has_valid_token=True,
        )
        logger.info("RetroAchievements credentials saved for user %s", user_id)

    async def delete_credentials(self, user_id: int) -> None:
        await self.credentials.delete(user_id, RA_SERVICE)
        logger.info("RetroAchievements credentials deleted for user %s", user_id)
