# backend/app/api/deps.py
from typing import List

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.errors import UnauthorizedError
from backend.app.db.base import get_db
from backend.app.integrations.base import AchievementSource
from backend.app.integrations.http import HttpClient
from backend.app.integrations.retroachievements import (
    RetroAchievementsAccounts,
    RetroAchievementsApi,
    RetroAchievementsSource,
)
from backend.app.integrations.steam import SteamAccountLinker, SteamAchievementSource, SteamWebApi
from backend.app.models.user import User
from backend.app.repositories.credential import UserCredentialRepository
from backend.app.schemas.user import TokenPayload
from backend.app.security.encryption import CredentialVault, get_vault
from backend.app.services.achievements import AchievementService
from backend.app.services.credentials import CredentialResolver, CredentialService

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login"
)


async def get_current_user(
        db: AsyncSession = Depends(get_db),
        token: str = Depends(reusable_oauth2)
) -> User:
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        token_data = TokenPayload(**payload)
    except (JWTError, ValidationError):
        raise UnauthorizedError("Could not validate credentials")

    result = await db.execute(select(User).where(User.username == token_data.sub))
    user = result.scalars().first()

    if not user or not user.is_active:
        raise UnauthorizedError("Could not validate credentials")

    return user


# --- Provider clients ---

def get_http_client() -> HttpClient:
    return HttpClient()


def get_steam_api(http: HttpClient = Depends(get_http_client)) -> SteamWebApi:
    return SteamWebApi(http, api_key=settings.STEAM_API_KEY)


def get_retroachievements_api(http: HttpClient = Depends(get_http_client)) -> RetroAchievementsApi:
    return RetroAchievementsApi(http)


def get_achievement_sources(
        steam_api: SteamWebApi = Depends(get_steam_api),
        ra_api: RetroAchievementsApi = Depends(get_retroachievements_api),
) -> List[AchievementSource]:
    return [SteamAchievementSource(steam_api), RetroAchievementsSource(ra_api)]


# --- Services ---

def get_credential_repository(db: AsyncSession = Depends(get_db)) -> UserCredentialRepository:
    return UserCredentialRepository(db)


def get_credential_resolver(
        repository: UserCredentialRepository = Depends(get_credential_repository),
        vault: CredentialVault = Depends(get_vault),
) -> CredentialResolver:
    return CredentialResolver(repository, vault)


def get_credential_service(
        repository: UserCredentialRepository = Depends(get_credential_repository),
        vault: CredentialVault = Depends(get_vault),
) -> CredentialService:
    return CredentialService(repository, vault)


def get_achievement_service(
        db: AsyncSession = Depends(get_db),
        sources: List[AchievementSource] = Depends(get_achievement_sources),
        resolver: CredentialResolver = Depends(get_credential_resolver),
) -> AchievementService:
    return AchievementService(db, sources, resolver)


def get_steam_linker(
        http: HttpClient = Depends(get_http_client),
        steam_api: SteamWebApi = Depends(get_steam_api),
        repository: UserCredentialRepository = Depends(get_credential_repository),
        vault: CredentialVault = Depends(get_vault),
) -> SteamAccountLinker:
    return SteamAccountLinker(http, steam_api, repository, vault)


def get_retroachievements_accounts(
        ra_api: RetroAchievementsApi = Depends(get_retroachievements_api),
        repository: UserCredentialRepository = Depends(get_credential_repository),
        vault: CredentialVault = Depends(get_vault),
) -> RetroAchievementsAccounts:
    return RetroAchievementsAccounts(ra_api, repository, vault)
