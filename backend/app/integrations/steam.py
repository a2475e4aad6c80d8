# backend/app/integrations/steam.py
"""
Steam integration: Web API achievements and OpenID 2.0 account linking.

Achievements for a game come from three sequential calls:
1. GetSchemaForGame                      (required, failure → empty result)
2. GetPlayerAchievements                 (optional, failure → everything locked)
3. GetGlobalAchievementPercentagesForApp (optional, failure → rarity unknown)

Linking flow:
- get_login_url()   builds the checkid_setup redirect
- verify_callback() re-posts the assertion with mode=check_authentication
  (bounded by STEAM_OPENID_TIMEOUT_SECONDS); any failure → None
- link_account()    fetches the public profile and stores the encrypted credential
"""
import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode, urlsplit

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

OPENID_NS = "http://specs.openid.net/auth/2.0"
OPENID_IDENTIFIER_SELECT = "http://specs.openid.net/auth/2.0/identifier_select"

# https://steamcommunity.com/openid/id/76561198012345678
CLAIMED_ID_PATTERN = re.compile(r"/id/(\d+)$")

STEAM_SERVICE = "steam"
STEAM_CREDENTIAL_TYPE = "steam_openid"


class SteamWebApi:
    """Thin client for the Steam Web API endpoints we use."""

    def __init__(self, http: HttpClient, api_key: Optional[str] = None, base_url: str = None):
        self.http = http
        self.api_key = api_key
        self.base_url = (base_url or settings.STEAM_WEB_API_URL).rstrip("/")

    def _key(self) -> str:
        if not self.api_key:
            raise ValidationError("Steam API key not configured")
        return self.api_key

    async def get_schema_for_game(self, app_id: int) -> List[Dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.base_url}/ISteamUserStats/GetSchemaForGame/v2/",
            params={"key": self._key(), "appid": app_id},
        )
        game = (data or {}).get("game") or {}
        return (game.get("availableGameStats") or {}).get("achievements") or []

    async def get_player_achievements(self, steam_id: str, app_id: int) -> List[Dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.base_url}/ISteamUserStats/GetPlayerAchievements/v1/",
            params={"key": self._key(), "steamid": steam_id, "appid": app_id},
        )
        stats = (data or {}).get("playerstats") or {}
        if not stats.get("success", False):
            raise ValueError(stats.get("error") or "Player achievements unavailable")
        return stats.get("achievements") or []

    async def get_global_achievement_percentages(self, app_id: int) -> Dict[str, float]:
        data = await self.http.get_json(
            f"{self.base_url}/ISteamUserStats/GetGlobalAchievementPercentagesForApp/v2/",
            params={"gameid": app_id},
        )
        rows = ((data or {}).get("achievementpercentages") or {}).get("achievements") or []
        return {row["name"]: float(row["percent"]) for row in rows}

    async def get_player_summary(self, steam_id: str) -> Optional[Dict[str, Any]]:
        data = await self.http.get_json(
            f"{self.base_url}/ISteamUser/GetPlayerSummaries/v2/",
            params={"key": self._key(), "steamids": steam_id},
        )
        players = ((data or {}).get("response") or {}).get("players") or []
        return players[0] if players else None


def _unlock_time(entry: Mapping[str, Any]) -> Optional[datetime]:
    timestamp = entry.get("unlocktime") or 0
    if not entry.get("achieved") or timestamp <= 0:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class SteamAchievementSource(AchievementSource):
    source = SourceApi.STEAM
    credential_service = STEAM_SERVICE
    game_id_attribute = "steam_app_id"

    def __init__(self, api: SteamWebApi):
        self.api = api

    def account_from_credentials(self, credentials: Mapping[str, Any]) -> SourceAccount:
        steam_id = credentials.get("steam_id")
        if not steam_id:
            raise ValidationError("Invalid Steam credentials format")
        return SourceAccount(account_id=str(steam_id))

    async def fetch_achievements(
        self, external_game_id: int, account: SourceAccount
    ) -> List[NormalizedAchievement]:
        # Missing API key is a configuration error, not a provider failure
        if not self.api.api_key:
            raise ValidationError("Steam API key not configured")

        try:
            schema = await self.api.get_schema_for_game(external_game_id)
        except Exception:
            logger.error("Failed to fetch Steam achievement schema for app %s", external_game_id, exc_info=True)
            return []

        if not schema:
            return []

        unlocks: Dict[str, Mapping[str, Any]] = {}
        try:
            player_rows = await self.api.get_player_achievements(account.account_id, external_game_id)
            unlocks = {row["apiname"]: row for row in player_rows}
        except Exception as exc:
            logger.info(
                "Steam unlock states unavailable for app %s (profile may be private): %s",
                external_game_id, exc,
            )

        percentages: Dict[str, float] = {}
        try:
            percentages = await self.api.get_global_achievement_percentages(external_game_id)
        except Exception as exc:
            logger.info("Steam global percentages unavailable for app %s: %s", external_game_id, exc)

        achievements = []
        for entry in schema:
            api_name = entry.get("name")
            if not api_name:
                logger.warning("Skipping Steam schema entry without a name for app %s", external_game_id)
                continue
            unlock = unlocks.get(api_name) or {}
            achievements.append(NormalizedAchievement(
                external_id=api_name,
                name=entry.get("displayName") or api_name,
                description=entry.get("description") or "",
                icon_url=entry.get("icon") or None,
                rarity_percentage=percentages.get(api_name),
                unlocked=bool(unlock.get("achieved")),
                unlock_time=_unlock_time(unlock),
            ))
        return achievements


class SteamAccountLinker:
    """Steam OpenID 2.0 login, verification and credential storage."""

    def __init__(
        self,
        http: HttpClient,
        api: SteamWebApi,
        credentials: UserCredentialRepository,
        vault: CredentialVault,
        openid_url: str = None,
        verify_timeout: float = None,
    ):
        self.http = http
        self.api = api
        self.credentials = credentials
        self.vault = vault
        self.openid_url = openid_url or settings.STEAM_OPENID_URL
        self.verify_timeout = verify_timeout or settings.STEAM_OPENID_TIMEOUT_SECONDS

    def get_login_url(self, return_url: str) -> str:
        parts = urlsplit(return_url)
        params = {
            "openid.ns": OPENID_NS,
            "openid.mode": "checkid_setup",
            "openid.return_to": return_url,
            "openid.realm": f"{parts.scheme}://{parts.netloc}",
            "openid.identity": OPENID_IDENTIFIER_SELECT,
            "openid.claimed_id": OPENID_IDENTIFIER_SELECT,
        }
        return f"{self.openid_url}?{urlencode(params)}"

    async def verify_callback(self, params: Mapping[str, str]) -> Optional[str]:
        """
        Confirm an OpenID assertion with Steam and return the verified Steam ID.

        Returns None on every failure (wrong mode, HTTP error, timeout,
        negative answer, malformed claimed_id); never raises.
        """
        mode = params.get("openid.mode")
        if mode != "id_res":
            logger.warning("Rejected Steam OpenID callback with mode %r", mode)
            return None

        verify_params = dict(params)
        verify_params["openid.mode"] = "check_authentication"

        try:
            status, body = await asyncio.wait_for(
                self.http.post_form(self.openid_url, verify_params),
                timeout=self.verify_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Steam OpenID verification timed out")
            return None
        except Exception:
            logger.error("Steam OpenID verification request failed", exc_info=True)
            return None

        if status != 200:
            logger.warning("Steam OpenID verification returned HTTP %s", status)
            return None

        if "is_valid:true" not in body:
            logger.warning("Steam OpenID assertion was not confirmed")
            return None

        match = CLAIMED_ID_PATTERN.search(params.get("openid.claimed_id") or "")
        if not match:
            logger.warning("Could not extract Steam ID from claimed_id")
            return None

        steam_id = match.group(1)
        logger.info("Steam OpenID verification succeeded for %s", steam_id)
        return steam_id

    async def get_player_summary(self, steam_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.api.get_player_summary(steam_id)
        except Exception:
            logger.error("Failed to fetch Steam player summary for %s", steam_id, exc_info=True)
            return None

    async def link_account(self, user_id: int, steam_id: str) -> Dict[str, str]:
        """Store (or overwrite) the user's Steam credential. Returns the stored payload."""
        logger.info("Linking Steam account %s for user %s", steam_id, user_id)

        summary = await self.get_player_summary(steam_id)
        if not summary:
            raise ValidationError("Could not retrieve Steam profile information")

        payload = {
            "steam_id": steam_id,
            "display_name": summary.get("personaname", ""),
            "avatar_url": summary.get("avatarfull", ""),
            "profile_url": summary.get("profileurl", ""),
            "linked_at": datetime.now(timezone.utc).isoformat(),
        }

        await self.credentials.upsert(
            user_id,
            service=STEAM_SERVICE,
            credential_type=STEAM_CREDENTIAL_TYPE,
            encrypted_credentials=self.vault.encrypt(payload),
            is_active=True,
            has_valid_token=True,
        )
        return payload

    async def complete_link(self, user_id: int, params: Mapping[str, str]) -> Optional[Dict[str, str]]:
        """Verify a callback and link on success. None means "not linked"."""
        steam_id = await self.verify_callback(params)
        if steam_id is None:
            return None
        return await self.link_account(user_id, steam_id)

    async def unlink_account(self, user_id: int) -> None:
        logger.info("Unlinking Steam account for user %s", user_id)
        await self.credentials.delete(user_id, STEAM_SERVICE)
