from evote.database.connection import MongoConnector, get_db

__all__ = ["MongoConnector", "get_db"]
