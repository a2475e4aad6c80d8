# backend/app/models/achievement.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from backend.app.db.base import Base


class Achievement(Base):
    """
    One unlockable item for a (game, platform) pair, as reported by a source.

    Rows are shared by every user; upserts target
    (game_id, platform_id, achievement_id).
    """
    __tablename__ = "achievements"
    __table_args__ = (
        UniqueConstraint(
            "game_id", "platform_id", "achievement_id",
            name="uq_achievements_game_platform_achievement",
        ),
        Index("idx_achievements_game_platform", "game_id", "platform_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False)

    # Id assigned by the source (Steam api name, RetroAchievements numeric id...)
    achievement_id = Column(Text, nullable=False)

    name = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    icon_url = Column(Text, nullable=True)

    # 0-100, share of players holding it
    rarity_percentage = Column(Float, nullable=True)
    points = Column(Integer, nullable=True)

    # steam / retroachievements / rawg / manual
    source_api = Column(String(32), nullable=False, index=True)
    external_id = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


class UserAchievement(Base):
    """
    Unlock state of one achievement for one user.

    A missing row means "locked, unknown".
    """
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    achievement_id = Column(
        Integer,
        ForeignKey("achievements.id", ondelete="CASCADE"),
        nullable=False,
    )

    unlocked = Column(Boolean, nullable=False, default=False, index=True)
    unlock_date = Column(DateTime(timezone=True), nullable=True)
