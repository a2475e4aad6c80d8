# backend/app/core/logging.py
import logging

from backend.app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # aiohttp access/client logs are noisy at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
