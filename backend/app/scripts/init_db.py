"""Create the database tables.

    python -m app.scripts.init_db
"""

import asyncio

from app.core.database import get_db_debug_info, init_db


async def main():
    print("Initializing database tables...")
    await init_db()
    print(f"Database initialization complete ({get_db_debug_info()['url']})")


if __name__ == "__main__":
    asyncio.run(main())
