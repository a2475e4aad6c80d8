# backend/app/models/game.py
"""
Library games and platforms.

Only the columns the achievement engine reads are modelled here; the
rest of the catalogue (genres, covers, editions...) lives elsewhere.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func

from backend.app.db.base import Base


class Platform(Base):
    __tablename__ = "platforms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)

    # pc / console / mobile / physical
    platform_type = Column(String(20), nullable=False, default="pc")

    # Grouping used for attribution, e.g. "retro" for emulated systems
    platform_family = Column(String(50), nullable=True, index=True)

    igdb_id = Column(Integer, unique=True, nullable=True)


class Game(Base):
    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)

    # --- External ids, one per achievement provider ---
    steam_app_id = Column(Integer, nullable=True, index=True)
    retro_game_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
