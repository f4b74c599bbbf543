import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from ..core.config import Settings

logger = logging.getLogger(__name__)


def create_client(settings: Settings) -> AsyncIOMotorClient:
    """Create a MongoDB client; no I/O happens until the first command."""
    return AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)


async def init_mongo(
    client: AsyncIOMotorClient, db_name: str
) -> AsyncIOMotorDatabase:
    """Verify the connection and return the registry database."""
    try:
        logger.info("Connecting to MongoDB...")
        db = client[db_name]
        await db.command("ping")
        logger.info("Successfully connected to MongoDB")
        return db
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise


async def check_mongo_health(db: AsyncIOMotorDatabase) -> bool:
    """Check if the database connection is online."""
    try:
        await db.command("ping")
        return True
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return False


def close_mongo_connection(client: AsyncIOMotorClient) -> None:
    """Close MongoDB connection."""
    client.close()
    logger.info("MongoDB connection closed")
