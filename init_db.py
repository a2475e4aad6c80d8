import argparse
import asyncio

from backend.app.core.logging import setup_logging
from backend.app.db import init_models

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the database schema")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first (development only)")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_models(drop=args.drop))
