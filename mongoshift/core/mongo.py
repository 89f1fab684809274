# mongoshift/core/mongo.py
"""
MongoDB client construction.
"""
from motor.motor_asyncio import AsyncIOMotorClient

from mongoshift.core.config import MigrationSettings


def create_client(settings: MigrationSettings) -> AsyncIOMotorClient:
    """
    Create a Motor client for the configured MongoDB URI.

    Returns:
        A new AsyncIOMotorClient. The caller owns it and must close it.
    """
    return AsyncIOMotorClient(settings.mongodb)
