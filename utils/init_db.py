"""
Database initialization script
Run this to set up the library schema and, optionally, sample data
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import DatabaseConfig, ServerConfig
from container import EntityContainer
from database import DatabaseConnection, init_database

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent.parent / "schema.sql"

SAMPLE_BORROWERS = [
    {"surname": "Meier", "firstname": "Anna, Paul", "contactname": "Petra Meier",
     "emailaddress": "petra.meier@example.org", "phone": "0301234567"},
    {"surname": "Schmidt", "firstname": "Lena", "contactname": "Jan Schmidt",
     "emailaddress": "jan.schmidt@example.org"},
]

SAMPLE_ITEMS = [
    {"barcode": "10001", "title": "Der Grüffelo", "author": "Julia Donaldson",
     "category": "Buch", "subject": "Bilderbuch B-gelb", "age": "K-1"},
    {"barcode": "10002", "title": "Die kleine Raupe Nimmersatt", "author": "Eric Carle",
     "category": "Buch", "subject": "Bilderbuch B-gelb", "age": "K-1"},
    {"barcode": "10003", "title": "Was ist was: Dinosaurier", "category": "Buch",
     "subject": "Sachkunde S-blau", "age": "All Ages"},
]


async def schema_exists(db: DatabaseConnection) -> bool:
    return await db.fetchval("SELECT to_regclass('public.borrowers') IS NOT NULL")


async def initialize_database(config: DatabaseConfig, force: bool = False):
    """Initialize database with schema"""
    logger.info("Starting database initialization...")

    db = await init_database(config)

    try:
        if await schema_exists(db):
            logger.warning("Database schema already exists!")
            if not force:
                response = input("Do you want to recreate the schema? This will DELETE ALL DATA! (yes/no): ")
                if response.lower() != 'yes':
                    logger.info("Aborted.")
                    return

            logger.warning("Dropping existing schema...")
            await db.execute("DROP SCHEMA public CASCADE")
            await db.execute("CREATE SCHEMA public")

        await db.apply_schema(str(SCHEMA_FILE))
        logger.info("Database initialized successfully!")
    finally:
        await db.disconnect()


async def seed_sample_data(config: DatabaseConfig):
    """Seed database with a few borrowers and items"""
    logger.info("Seeding sample data...")

    db = await init_database(config)

    try:
        entities = EntityContainer(db, ServerConfig())
        for borrower in SAMPLE_BORROWERS:
            await entities.borrowers.create(borrower)
        for item in SAMPLE_ITEMS:
            await entities.items.create(item)
        logger.info(f"Created {len(SAMPLE_BORROWERS)} borrowers and {len(SAMPLE_ITEMS)} items")
    finally:
        await db.disconnect()


async def main():
    """Main entry point"""
    try:
        config = DatabaseConfig.from_environment()
        logger.info(f"Connecting to: {config.host}:{config.port}/{config.database}")
    except ValueError as e:
        logger.error(f"Failed to load configuration: {e}")
        logger.info("Make sure you have a .env file or environment variables set.")
        sys.exit(1)

    if len(sys.argv) < 2:
        print("Usage: python init_db.py [command] [--force]")
        print("\nCommands:")
        print("  init   - Initialize database schema")
        print("  seed   - Seed sample data")
        print("  reset  - Drop and recreate schema with sample data")
        sys.exit(1)

    command = sys.argv[1]
    force = "--force" in sys.argv or "-f" in sys.argv

    if command == "init":
        await initialize_database(config, force=force)
    elif command == "seed":
        await seed_sample_data(config)
    elif command == "reset":
        await initialize_database(config, force=True)
        await seed_sample_data(config)
    else:
        logger.error(f"Unknown command: {command}")
        print("Usage: python init_db.py [init|seed|reset] [--force]")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
