"""
Backfill encrypted/hashed addresses for voters registered with a raw wallet
address (``wallet_address`` field) before addresses were encrypted.

    python -m evote.migrate_voter_addresses
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import motor.motor_asyncio

from evote import config
from evote.security import encrypt_address, hash_address, mask

logger = logging.getLogger(__name__)


def migrated_fields(voter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The $set/$unset update for one legacy voter, or None if nothing to do."""
    raw = voter.get("wallet_address")
    if not raw or voter.get("hashed_address"):
        return None
    return {
        "$set": {"encrypted_address": encrypt_address(raw), "hashed_address": hash_address(raw)},
        "$unset": {"wallet_address": ""},
    }


async def migrate_voter_addresses(collection) -> int:
    migrated = 0
    async for voter in collection.find({"wallet_address": {"$exists": True}}):
        update = migrated_fields(voter)
        if update is None:
            continue
        await collection.update_one({"_id": voter["_id"]}, update)
        migrated += 1
        logger.info(f"Encrypted address for voter {mask(voter['wallet_address'])}")
    return migrated


async def main():
    client = motor.motor_asyncio.AsyncIOMotorClient(config.MONGO_URI)
    collection = client[config.MONGO_DB].get_collection(config.VOTERS_COLLECTION_NAME)
    try:
        count = await migrate_voter_addresses(collection)
        logger.info(f"Migrated {count} voters")
    finally:
        client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
