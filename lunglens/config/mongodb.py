"""MongoDB connection helpers."""

import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from lunglens.config.settings import Settings

logger = logging.getLogger(__name__)


def connect_to_mongo(settings: Settings) -> AsyncIOMotorClient:
    """Create the Motor client. The driver connects lazily on first use."""
    logger.info(f"Connecting to MongoDB database: {settings.MONGODB_DB}")
    return AsyncIOMotorClient(settings.MONGODB_URL, serverSelectionTimeoutMS=5000)


def get_database(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    """Get the application database from a connected client."""
    return client[settings.MONGODB_DB]


async def ensure_indexes(database: AsyncIOMotorDatabase, settings: Settings) -> None:
    """Create the unique key indexes for patients and users."""
    try:
        await database[settings.PATIENTS_COLLECTION].create_index("patientId", unique=True)
        await database[settings.USERS_COLLECTION].create_index("userId", unique=True)
        logger.info("MongoDB indexes ensured")
    except Exception as e:
        # Startup continues; requests will surface the storage error.
        logger.warning(f"Could not ensure MongoDB indexes: {str(e)}")


def close_mongo_connection(client: AsyncIOMotorClient) -> None:
    """Close the Motor client."""
    client.close()
    logger.info("MongoDB connection closed")
