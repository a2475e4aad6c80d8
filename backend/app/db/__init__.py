import logging

logger = logging.getLogger(__name__)


async def init_models(drop: bool = False) -> None:
    """Create every table known to the ORM metadata."""
    from backend.app.db.base import Base, engine
    from backend.app import models  # noqa: F401  registers tables on Base.metadata

    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
            logger.info("Creating database tables")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ready")
    except Exception:
        logger.exception("Failed to create database tables")
        raise
