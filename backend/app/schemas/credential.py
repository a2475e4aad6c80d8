# backend/app/schemas/credential.py
"""
Schemas for third-party credential management.

No response schema here carries decrypted secrets, only status metadata.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ApiService = Literal["igdb", "steam", "retroachievements", "rawg"]
CredentialType = Literal["twitch_oauth", "steam_openid", "api_key"]


class CredentialSaveRequest(BaseModel):
    service: ApiService
    credential_type: CredentialType
    credentials: Dict[str, Any] = Field(default_factory=dict)


class CredentialStatus(BaseModel):
    service: str
    is_active: bool
    has_valid_token: bool
    token_expires_at: Optional[datetime] = None
    last_validated_at: Optional[datetime] = None


class CredentialStatusResponse(BaseModel):
    services: List[CredentialStatus]


class CredentialSaveResponse(BaseModel):
    service: str
    credential_type: str
    is_active: bool
    message: str


class CredentialValidateResponse(BaseModel):
    service: str
    valid: bool
    has_valid_token: bool
    token_expires_at: Optional[datetime] = None
    message: str


class RetroAchievementsCredentialsRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    api_key: str = Field(..., min_length=1)
