'''
Creates every table and index of the scheduler on the configured database.

Usage:
    python scripts/create_schema.py            # DATABASE_URL_PROD
    python scripts/create_schema.py --test     # DATABASE_URL_TEST
'''
import argparse
import asyncio

from dotenv import load_dotenv

# The .env has to be loaded before the settings object is created
load_dotenv()

from tuition_scheduler.common.config import settings
from tuition_scheduler.common.logger import log
from tuition_scheduler.database import models as db_models
from tuition_scheduler.database.engine import build_engine


async def create_schema(database_url: str, drop_first: bool = False):
    engine = build_engine(database_url)
    try:
        async with engine.begin() as conn:
            if drop_first:
                log.warning("Dropping all scheduler tables...")
                await conn.run_sync(db_models.Base.metadata.drop_all)
            await conn.run_sync(db_models.Base.metadata.create_all)
        log.info(f"Schema created ({len(db_models.Base.metadata.tables)} tables).")
    finally:
        await engine.dispose()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Create the tuition scheduler schema.")
    parser.add_argument("--test", action="store_true", help="Use DATABASE_URL_TEST.")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first.")
    args = parser.parse_args()

    url = settings.DATABASE_URL_TEST if args.test else settings.DATABASE_URL_PROD
    asyncio.run(create_schema(url, drop_first=args.drop))
