import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from pymongo import DESCENDING, ReturnDocument

from evote import config
from evote.database import get_db
from evote.models.election_model import Candidate, Election, Winner
from evote.models.vote_model import Vote
from evote.models.voter_model import ElectionApproval, Voter, VoterStatus
from evote.schemas import VoterRegistration
from evote.security import encrypt_address, hash_address, mask

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    # Naive UTC, the way pymongo hands datetimes back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def serialize(doc: Any) -> Any:
    """Make Mongo documents JSON-safe (ObjectId -> str, datetimes -> ISO)."""
    return jsonable_encoder(doc, custom_encoder={ObjectId: str})


# --- Voters ---

def get_voter_by_address(address: str) -> Optional[Dict[str, Any]]:
    return get_db().voters.find_one({"hashed_address": hash_address(address)})


def get_voter(voter_id: ObjectId) -> Optional[Dict[str, Any]]:
    return get_db().voters.find_one({"_id": voter_id})


def get_voter_by_encrypted_address(encrypted_address: str) -> Optional[Dict[str, Any]]:
    return get_db().voters.find_one({"encrypted_address": encrypted_address})


def register_voter(registration: VoterRegistration) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Store a registration request.

    Returns (voter, None) on success or (None, existing_status) when the
    address already has a pending/approved registration. Rejected voters are
    allowed to reapply.
    """
    db = get_db().voters
    fields = registration.model_dump(exclude={"wallet_address"})
    existing = get_voter_by_address(registration.wallet_address)

    if existing and existing.get("status") != VoterStatus.rejected.value:
        return None, existing.get("status")

    if existing:
        return db.find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": {**fields, "status": VoterStatus.pending.value, "reapplied_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        ), None

    voter = Voter(
        **fields,
        encrypted_address=encrypt_address(registration.wallet_address),
        hashed_address=hash_address(registration.wallet_address),
        created_at=utcnow(),
    )
    data = voter.model_dump()
    result = db.insert_one(data)
    data["_id"] = result.inserted_id
    return data, None


def list_voters() -> List[Dict[str, Any]]:
    voters = []
    for voter in get_db().voters.find({}).sort("created_at", DESCENDING):
        encrypted = voter.get("encrypted_address", "")
        voter["display_address"] = mask(encrypted)
        voters.append(voter)
    return voters


def apply_election_decision(
    voter: Dict[str, Any], action: str, election_id: Optional[str], contract_address: Optional[str]
) -> Dict[str, Any]:
    """Record an admin decision, per election when ``election_id`` is given."""
    db = get_db().voters
    status = VoterStatus.approved.value if action == "approve" else VoterStatus.rejected.value

    if not election_id:
        # Legacy non-election-specific approval
        return db.find_one_and_update(
            {"_id": voter["_id"]},
            {"$set": {"status": status, "is_whitelisted": status == VoterStatus.approved.value}},
            return_document=ReturnDocument.AFTER,
        )

    stamp = utcnow().isoformat()
    approval = ElectionApproval(
        election_id=election_id,
        status=status,
        contract_address=contract_address,
        is_whitelisted=status == VoterStatus.approved.value,
        approved_at=stamp if status == VoterStatus.approved.value else None,
        rejected_at=stamp if status == VoterStatus.rejected.value else None,
    ).model_dump(exclude_none=True)

    existing = [a for a in voter.get("election_approvals") or [] if a.get("election_id") == election_id]
    if existing:
        db.update_one(
            {"_id": voter["_id"], "election_approvals.election_id": election_id},
            {"$set": {"election_approvals.$": {**existing[0], **approval}}},
        )
    else:
        db.update_one({"_id": voter["_id"]}, {"$push": {"election_approvals": approval}})

    updated = db.find_one({"_id": voter["_id"]})
    approvals = updated.get("election_approvals") or []
    # Global status indicator: approved once any election approved the voter
    if any(a.get("status") == VoterStatus.approved.value for a in approvals):
        if updated.get("status") != VoterStatus.approved.value or not updated.get("is_whitelisted"):
            updated = db.find_one_and_update(
                {"_id": voter["_id"]},
                {"$set": {"status": VoterStatus.approved.value, "is_whitelisted": True}},
                return_document=ReturnDocument.AFTER,
            )
    return updated


def record_funding(voter_id: ObjectId, tx_hash: str, election_id: Optional[str] = None) -> None:
    db = get_db().voters
    db.update_one({"_id": voter_id}, {"$set": {"eth_tx_hash": tx_hash, "eth_sent_at": utcnow().isoformat()}})
    if election_id:
        db.update_one(
            {"_id": voter_id, "election_approvals.election_id": election_id},
            {"$set": {"election_approvals.$.eth_tx_hash": tx_hash}},
        )


def record_gas(voter_id: ObjectId, amount: str, tx_hash: str) -> None:
    get_db().voters.update_one(
        {"_id": voter_id},
        {"$set": {"gas_sent": True, "gas_amount": amount, "gas_tx_hash": tx_hash, "gas_timestamp": utcnow()}},
    )


def approved_election_ids(voter: Dict[str, Any]) -> List[str]:
    return [
        a["election_id"]
        for a in voter.get("election_approvals") or []
        if a.get("status") == VoterStatus.approved.value
    ]


def is_approved_for(voter: Dict[str, Any], election_id: str) -> bool:
    if voter.get("status") != VoterStatus.approved.value:
        return False
    approvals = voter.get("election_approvals") or []
    if not approvals:
        # Approved before per-election approvals existed
        return bool(voter.get("is_whitelisted"))
    return election_id in approved_election_ids(voter)


# --- Elections ---

def list_elections() -> List[Dict[str, Any]]:
    return list(get_db().elections.find({}).sort("created_at", DESCENDING))


def list_active_elections(ids: Optional[List[ObjectId]] = None, only_open: bool = False) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"is_active": True}
    if ids is not None:
        query["_id"] = {"$in": ids}
    if only_open:
        query["end_date"] = {"$gt": utcnow()}
    return list(get_db().elections.find(query))


def get_election(election_id: ObjectId) -> Optional[Dict[str, Any]]:
    return get_db().elections.find_one({"_id": election_id})


def create_election(
    title: str,
    description: str,
    contract_address: Optional[str],
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = utcnow()
    start = as_naive_utc(start_date) or now
    election = Election(
        title=title,
        description=description,
        contract_address=contract_address,
        start_date=start,
        end_date=as_naive_utc(end_date) or start + timedelta(days=config.ELECTION_DEFAULT_DAYS),
        created_at=now,
    )
    data = election.model_dump()
    result = get_db().elections.insert_one(data)
    data["_id"] = result.inserted_id
    return data


def set_election_fields(election_id: ObjectId, fields: Dict[str, Any]) -> bool:
    """Returns False when no election matched."""
    result = get_db().elections.update_one({"_id": election_id}, {"$set": fields})
    return result.matched_count > 0


def add_candidate(election_id: ObjectId, name: str, address: str) -> Dict[str, Any]:
    candidate = Candidate(name=name, address=address, votes=0, created_at=utcnow()).model_dump()
    get_db().elections.update_one({"_id": election_id}, {"$push": {"candidates": candidate}})
    return candidate


def set_candidate_votes(election_id: ObjectId, index: int, votes: int) -> None:
    get_db().elections.update_one({"_id": election_id}, {"$set": {f"candidates.{index}.votes": votes}})


def increment_candidate_votes(
    election_id: ObjectId, candidate_name: Optional[str] = None, candidate_address: Optional[str] = None
) -> bool:
    """Bump one candidate's mirrored count, matched by address when given, else by name."""
    if candidate_address is not None:
        match = {"candidates.address": candidate_address}
    else:
        match = {"candidates.name": candidate_name}
    result = get_db().elections.update_one(
        {"_id": election_id, **match},
        {"$inc": {"candidates.$.votes": 1}},
    )
    return result.matched_count > 0


def set_winner(election_id: ObjectId, winner: Dict[str, Any]) -> None:
    get_db().elections.update_one(
        {"_id": election_id},
        {"$set": {"winner": Winner(**winner).model_dump(), "is_active": False}},
    )


# --- Votes ---

def find_vote(election_id: str, hashed_address: str) -> Optional[Dict[str, Any]]:
    return get_db().votes.find_one({"election_id": election_id, "hashed_address": hashed_address})


def delete_vote(election_id: str, hashed_address: str) -> None:
    get_db().votes.delete_one({"election_id": election_id, "hashed_address": hashed_address})


def record_vote(
    election_id: str,
    hashed_address: str,
    candidate_name: str,
    candidate_address: Optional[str],
    transaction_hash: Optional[str] = None,
) -> Dict[str, Any]:
    vote = Vote(
        election_id=election_id,
        hashed_address=hashed_address,
        candidate_name=candidate_name,
        candidate_address=candidate_address,
        transaction_hash=transaction_hash,
        timestamp=utcnow(),
    ).model_dump()
    get_db().votes.insert_one(vote)
    return vote


def mark_voted(hashed_address: str, election_id: str) -> None:
    get_db().voters.update_one(
        {"hashed_address": hashed_address},
        {"$set": {"has_voted": True, "last_voted_election_id": election_id, "voted_at": utcnow()}},
    )


def record_unmirrored_vote(election_id: str, hashed_address: str, candidate_address: str, transaction_hash: str) -> None:
    get_db().blockchain_votes.insert_one({
        "election_id": election_id,
        "hashed_address": hashed_address,
        "candidate_address": candidate_address,
        "transaction_hash": transaction_hash,
        "timestamp": utcnow(),
    })


def voted_election_ids(hashed_address: str) -> List[str]:
    db = get_db()
    voted = [v["election_id"] for v in db.votes.find({"hashed_address": hashed_address})]

    voter = db.voters.find_one({"hashed_address": hashed_address})
    last = voter.get("last_voted_election_id") if voter else None
    if voter and voter.get("has_voted") and last and last not in voted:
        voted.append(last)

    for vote in db.blockchain_votes.find({"hashed_address": hashed_address}):
        if vote.get("election_id") and vote["election_id"] not in voted:
            voted.append(vote["election_id"])
    return voted
