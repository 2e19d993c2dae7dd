"""
MongoDB client factory for api-spot-trader.

Trades, portfolio snapshots, settings and the operator log all live in one
database reached through a single AsyncIOMotorClient per process.
"""

from motor.motor_asyncio import AsyncIOMotorClient

from config.settings import settings


def get_mongo_client() -> AsyncIOMotorClient:
    """
    Create a configured AsyncIOMotorClient from the MONGODB_* settings
    (URI, pool size, selection/connect/socket timeouts).
    """
    return AsyncIOMotorClient(
        settings.MONGODB_URI,
        uuidRepresentation="standard",
        maxPoolSize=settings.MONGODB_MAX_POOL_SIZE,
        serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=settings.MONGODB_CONNECT_TIMEOUT_MS,
        socketTimeoutMS=settings.MONGODB_SOCKET_TIMEOUT_MS,
    )
