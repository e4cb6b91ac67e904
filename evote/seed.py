# Demo data for local development
import logging
from datetime import timedelta

from evote import config
from evote.crud import utcnow
from evote.database import get_db
from evote.security import encrypt_address, hash_address

logger = logging.getLogger(__name__)

DEMO_VOTERS = [
    {"address": "0xEc97ADF38aD8421cf8bdcaD2dA11883748b80839", "first_name": "Asha", "last_name": "Rao", "approved": True},
    {"address": "0x1234567890123456789012345678901234567890", "first_name": "Ravi", "last_name": "Kumar", "approved": True},
    {"address": "0x0987654321098765432109876543210987654321", "first_name": "Meena", "last_name": "Iyer", "approved": False},
]

DEMO_CANDIDATES = [
    {"name": "John Doe", "address": "0x1111111111111111111111111111111111111111"},
    {"name": "Jane Smith", "address": "0x2222222222222222222222222222222222222222"},
    {"name": "Mike Johnson", "address": "0x3333333333333333333333333333333333333333"},
]


def seed_database():
    """Wipe voters, elections and votes, then insert the demo records."""
    db = get_db()
    for collection in (db.voters, db.elections, db.votes, db.blockchain_votes):
        collection.delete_many({})

    now = utcnow()
    voters = []
    for demo in DEMO_VOTERS:
        voters.append({
            "first_name": demo["first_name"],
            "last_name": demo["last_name"],
            "aadhar": "000000000000",
            "phone_number": "0000000000",
            "country": "India",
            "physical_address": "Demo Street",
            "encrypted_address": encrypt_address(demo["address"]),
            "hashed_address": hash_address(demo["address"]),
            "status": "approved" if demo["approved"] else "pending",
            "is_whitelisted": demo["approved"],
            "has_voted": False,
            "election_approvals": [],
            "created_at": now,
        })
    db.voters.insert_many(voters)

    election = {
        "title": "Student Council Election 2024",
        "description": "Annual election for student council positions",
        "contract_address": None,
        "start_date": now,
        "end_date": now + timedelta(days=config.ELECTION_DEFAULT_DAYS),
        "candidates": [dict(c, votes=0, created_at=now) for c in DEMO_CANDIDATES],
        "is_active": True,
        "winner": None,
        "created_at": now,
    }
    db.elections.insert_one(election)
    logger.info(f"Database seeded with {len(voters)} voters and 1 election")
    return voters, election
