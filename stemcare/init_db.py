"""Initialize database tables."""

import asyncio
import sys

from stemcare.app.db.base import Base, dispose_engine, get_engine, init_models


async def init_db(drop_existing: bool = False):
    """Create all database tables."""
    if drop_existing:
        # Import models so that drop_all knows every table
        import stemcare.app.models  # noqa: F401

        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        print("Dropped existing tables")

    await init_models()
    await dispose_engine()

    print("Database tables created successfully!")


if __name__ == "__main__":
    asyncio.run(init_db(drop_existing="--drop" in sys.argv))
