from backend.app.models.user import User
from backend.app.models.game import Game, Platform
from backend.app.models.achievement import Achievement, UserAchievement
from backend.app.models.user_credential import UserCredential

__all__ = [
    "User",
    "Game",
    "Platform",
    "Achievement",
    "UserAchievement",
    "UserCredential",
]
