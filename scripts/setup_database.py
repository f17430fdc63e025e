# scripts/setup_database.py
"""
Database setup for the PostgreSQL cache backend.
Creates the agent_cache table and its expiry index, then checks a round trip.
"""

import asyncio
import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import asyncpg
from infrastructure.storage.cache_store import PostgresCacheStore
from shared.logging import logger, setup_logging

async def create_database_if_not_exists(admin_url: str, database_name: str):
    """Create database if it doesn't exist"""
    admin_conn = await asyncpg.connect(admin_url)
    try:
        db_exists = await admin_conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1", database_name
        )

        if not db_exists:
            await admin_conn.execute(f'CREATE DATABASE "{database_name}"')
            logger.info("Created database", database=database_name)
        else:
            logger.info("Database already exists", database=database_name)
    finally:
        await admin_conn.close()

async def verify_setup(store: PostgresCacheStore):
    """Write, read and delete a probe entry, then sweep expired rows"""
    probe_key = "setup-verification"

    await store.set(probe_key, '{"probe": true}', ttl=60)
    if await store.get(probe_key) is None:
        raise RuntimeError("Failed to write and read the probe cache entry")
    await store.delete(probe_key)

    removed = await store.sweep()
    logger.info("Cache table verified", expired_rows_removed=removed)

async def main():
    setup_logging(level="INFO", json_logs=False)

    database_url = os.getenv("DATABASE_URL")

    if not database_url:
        # Default local development setup
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        database = os.getenv("DB_NAME", "idea_analysis")

        database_url = f"postgresql://{user}:{password}@{host}:{port}/{database}"
        admin_url = f"postgresql://{user}:{password}@{host}:{port}/postgres"

        logger.info("Using local database", host=host, port=port, database=database)

        try:
            await create_database_if_not_exists(admin_url, database)
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning("Could not create database (may already exist)", error=str(e))

    store = PostgresCacheStore(database_url=database_url)
    try:
        await store.initialize()
        await verify_setup(store)
        logger.info("Database setup completed successfully")
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
        logger.error("Database setup failed", error=str(e))
        sys.exit(1)
    finally:
        await store.close()

if __name__ == "__main__":
    asyncio.run(main())
