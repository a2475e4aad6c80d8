# backend/app/core/config.py
"""
Application configuration using pydantic-settings.

Security considerations:
- No hardcoded secrets in production (SECRET_KEY and ENCRYPTION_SECRET must be set via env)
- CORS_ORIGINS parsed from comma-separated env var, never defaults to "*"
- Database URLs normalized for async drivers automatically
- Provider API keys are optional; integrations degrade when they are missing
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Strictly typed application settings.

    Priority for loading:
    1. Environment variables (highest priority)
    2. .env file (via pydantic-settings)
    3. Default values (lowest priority, dev-safe only)
    """

    # ─────────────────────────────────────────────────────────────
    # Application metadata
    # ─────────────────────────────────────────────────────────────
    PROJECT_NAME: str = "Trophy Ledger"
    PROJECT_VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ─────────────────────────────────────────────────────────────
    # Security: JWT Configuration
    # ─────────────────────────────────────────────────────────────
    SECRET_KEY: str = "INSECURE_DEV_KEY_CHANGE_IN_PRODUCTION"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # ─────────────────────────────────────────────────────────────
    # Credential encryption
    # The vault key is derived once from secret + salt with scrypt.
    # Changing either value makes every stored credential unreadable
    # (they then present as "not configured").
    # ─────────────────────────────────────────────────────────────
    ENCRYPTION_SECRET: str = "INSECURE_DEV_ENCRYPTION_SECRET"
    ENCRYPTION_SALT: str = "INSECURE_DEV_ENCRYPTION_SALT"

    # ─────────────────────────────────────────────────────────────
    # Database Configuration
    # Priority: DATABASE_URL env var → SQLite fallback for local dev
    # ─────────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./trophy_ledger.db"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """
        Normalize database URLs for async SQLAlchemy compatibility.

        Conversions:
        - postgres://     → postgresql+asyncpg://
        - postgresql://   → postgresql+asyncpg://
        - sqlite:///      → sqlite+aiosqlite:///
        """
        if v is None:
            return "sqlite+aiosqlite:///./trophy_ledger.db"

        url = v.strip()

        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)

        if url.startswith("postgresql://") and "+asyncpg" not in url:
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)

        if url.startswith("sqlite:///") and "+aiosqlite" not in url:
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

        return url

    # MUST be False in production to prevent SQL query exposure
    DATABASE_ECHO: bool = False

    # ─────────────────────────────────────────────────────────────
    # Outbound HTTP
    # ─────────────────────────────────────────────────────────────
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # ─────────────────────────────────────────────────────────────
    # Steam (OpenID linking + Web API)
    # ─────────────────────────────────────────────────────────────
    STEAM_API_KEY: Optional[str] = None
    STEAM_OPENID_URL: str = "https://steamcommunity.com/openid/login"
    STEAM_WEB_API_URL: str = "https://api.steampowered.com"
    STEAM_OPENID_TIMEOUT_SECONDS: float = 5.0
    # IGDB id of the platform every Steam achievement is attributed to (PC)
    STEAM_PLATFORM_IGDB_ID: int = 6

    # ─────────────────────────────────────────────────────────────
    # RetroAchievements
    # Platform attribution for a game with no stored rows walks:
    # platform family → named fallback → any platform (if allowed)
    # ─────────────────────────────────────────────────────────────
    RETROACHIEVEMENTS_API_URL: str = "https://retroachievements.org/API"
    RETROACHIEVEMENTS_MEDIA_URL: str = "https://media.retroachievements.org"
    RETROACHIEVEMENTS_PLATFORM_FAMILY: str = "retro"
    RETROACHIEVEMENTS_FALLBACK_PLATFORM: Optional[str] = None
    RETROACHIEVEMENTS_ALLOW_ANY_PLATFORM: bool = True

    # ─────────────────────────────────────────────────────────────
    # CORS Configuration
    # Empty string → empty list (NOT "*" for security)
    # ─────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8000,http://127.0.0.1:8000"

    @property
    def BACKEND_CORS_ORIGINS(self) -> List[str]:
        """Parse CORS_ORIGINS string into a list of allowed origins."""
        if not self.CORS_ORIGINS or not self.CORS_ORIGINS.strip():
            return []

        return [
            origin.strip()
            for origin in self.CORS_ORIGINS.split(",")
            if origin.strip()
        ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def uses_insecure_defaults(self) -> bool:
        return self.SECRET_KEY.startswith("INSECURE_") or self.ENCRYPTION_SECRET.startswith("INSECURE_")


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()


# Most modules import `settings` directly from here
settings = get_settings()
