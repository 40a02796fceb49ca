# init_db.py
import asyncio

from clinicq.core.logs import configure_logging
from clinicq.db.sql import engine, init_db


async def init_models():
    # Drops every table first: development databases only
    await init_db(engine, drop=True)
    await engine.dispose()
    print("Database schema recreated successfully!")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_models())
