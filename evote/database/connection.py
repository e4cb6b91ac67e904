import logging
from typing import Optional

from pymongo import ASCENDING, MongoClient

from evote import config

logger = logging.getLogger(__name__)


class MongoConnector:
    """Process-wide handle on the mirror database and its collections."""

    _instance = None

    def __new__(cls, client: Optional[MongoClient] = None):
        if cls._instance is None:
            instance = super(MongoConnector, cls).__new__(cls)
            try:
                instance.client = client if client is not None else MongoClient(config.MONGO_URI)
                instance.db = instance.client[config.MONGO_DB]
                instance.voters = instance.db[config.VOTERS_COLLECTION_NAME]
                instance.elections = instance.db[config.ELECTIONS_COLLECTION_NAME]
                instance.votes = instance.db[config.VOTES_COLLECTION_NAME]
                instance.blockchain_votes = instance.db[config.BLOCKCHAIN_VOTES_COLLECTION_NAME]
                # Create unique indexes
                instance.voters.create_index("hashed_address", unique=True)
                instance.votes.create_index(
                    [("election_id", ASCENDING), ("hashed_address", ASCENDING)], unique=True
                )
                logger.info(f"Connected to MongoDB: {config.MONGO_DB}")
            except Exception as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise
            cls._instance = instance
        return cls._instance

    @classmethod
    def reset(cls, client: Optional[MongoClient] = None) -> "MongoConnector":
        """Drop the cached connection and reconnect, optionally to ``client``."""
        if cls._instance is not None and client is None:
            cls._instance.client.close()
        cls._instance = None
        return cls(client)


def get_db() -> MongoConnector:
    return MongoConnector()
