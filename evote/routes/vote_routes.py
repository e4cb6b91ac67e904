import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.errors import DuplicateKeyError

from evote import crud
from evote.blockchain import ChainClient, ChainError, get_chain
from evote.routes import parse_object_id
from evote.schemas import BlockchainVoteRequest, RelayVoteRequest
from evote.security import hash_address, normalize_address

logger = logging.getLogger(__name__)

vote_router = APIRouter(prefix="/api/voter", tags=["Vote"])


def check_ballot(
    election_id: str,
    voter_address: str,
    candidate_address: Optional[str] = None,
    candidate_name: Optional[str] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    """Mirror-side checks shared by every way of casting a vote."""
    election_oid = parse_object_id(election_id)
    hashed_address = hash_address(voter_address)
    voter = crud.get_voter_by_address(voter_address)
    if not voter:
        raise HTTPException(status_code=404, detail="Voter not found")

    if not crud.is_approved_for(voter, election_id):
        raise HTTPException(status_code=403, detail="Voter is not approved for this election")

    election = crud.get_election(election_oid)
    if not election:
        raise HTTPException(status_code=404, detail="Election not found")
    if not election.get("is_active"):
        raise HTTPException(status_code=400, detail="Election is not active")
    if not election.get("contract_address"):
        raise HTTPException(status_code=400, detail="Election has no contract address")

    candidates = election.get("candidates") or []
    if candidate_name is not None:
        candidate = next((c for c in candidates if c.get("name") == candidate_name), None)
    else:
        candidate = next(
            (c for c in candidates if normalize_address(c.get("address", "")) == normalize_address(candidate_address)),
            None,
        )
    if not candidate:
        raise HTTPException(status_code=404, detail="Candidate not found in this election")

    if (
        candidate_name is not None
        and candidate_address
        and candidate.get("address")
        and normalize_address(candidate["address"]) != normalize_address(candidate_address)
    ):
        raise HTTPException(status_code=400, detail="Candidate address mismatch")

    if crud.find_vote(election_id, hashed_address):
        raise HTTPException(
            status_code=400, detail="You have already voted in this election according to our records"
        )
    return voter, election, candidate


@vote_router.get("/vote-transaction")
def vote_transaction(
    election_id: str = Query(...),
    candidate_address: str = Query(...),
    voter_address: str = Query(...),
    chain: ChainClient = Depends(get_chain),
):
    """Unsigned ``voteByAddress`` transaction for the voter's wallet to sign."""
    _, election, candidate = check_ballot(election_id, voter_address, candidate_address=candidate_address)
    try:
        tx = chain.build_vote_transaction(election["contract_address"], candidate["address"], voter_address)
    except ChainError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"transaction": tx}


@vote_router.post("/vote")
def cast_vote(vote: RelayVoteRequest, chain: ChainClient = Depends(get_chain)):
    """
    Relays a wallet-signed vote, then mirrors it.

    The chain is authoritative: once the transaction is mined the vote stands
    even if the database write fails, in which case the vote is parked in
    ``blockchain_votes`` and the response says ``mirrored: false``.
    """
    _, election, candidate = check_ballot(vote.election_id, vote.voter_address, candidate_address=vote.candidate_address)

    try:
        receipt = chain.relay_transaction(vote.signed_transaction)
    except ChainError as e:
        raise HTTPException(status_code=400, detail=f"Blockchain error: {e}")

    tx_hash = receipt.get("transactionHash")
    if normalize_address(receipt.get("from") or "") != normalize_address(vote.voter_address) or normalize_address(
        receipt.get("to") or ""
    ) != normalize_address(election["contract_address"]):
        logger.error(f"Relayed transaction {tx_hash} does not match voter/election, not mirrored")
        raise HTTPException(status_code=400, detail="Signed transaction does not match voter and election")

    hashed_address = hash_address(vote.voter_address)
    mirrored = True
    try:
        crud.record_vote(vote.election_id, hashed_address, candidate["name"], candidate["address"], tx_hash)
        crud.increment_candidate_votes(election["_id"], candidate_address=candidate["address"])
        crud.mark_voted(hashed_address, vote.election_id)
    except Exception as e:
        mirrored = False
        logger.error(f"Vote succeeded on-chain but database write failed (tx {tx_hash}): {e}")
        try:
            crud.record_unmirrored_vote(vote.election_id, hashed_address, candidate["address"], tx_hash)
        except Exception as park_error:
            logger.error(f"Could not park unmirrored vote {tx_hash}: {park_error}")

    return {
        "success": True,
        "message": "Vote cast successfully!",
        "candidate": candidate["name"],
        "transaction_hash": tx_hash,
        "mirrored": mirrored,
    }


@vote_router.post("/blockchain-vote")
def record_blockchain_vote(vote: BlockchainVoteRequest, chain: ChainClient = Depends(get_chain)):
    """Mirror a vote the voter's wallet already sent to the contract."""
    _, election, candidate = check_ballot(
        vote.election_id,
        vote.voter_address,
        candidate_address=vote.candidate_address,
        candidate_name=vote.candidate_name,
    )

    # Double-check with the contract that the vote was actually cast
    try:
        if not chain.has_voted(election["contract_address"], vote.voter_address):
            raise HTTPException(status_code=400, detail="Vote not found on blockchain. Please try voting again.")
    except ChainError as e:
        # The wallet already completed the transaction; keep the mirror moving
        logger.warning(f"Proceeding with database update despite blockchain verification error: {e}")

    hashed_address = hash_address(vote.voter_address)
    try:
        crud.record_vote(
            vote.election_id, hashed_address, vote.candidate_name, vote.candidate_address, vote.transaction_hash
        )
        if not crud.increment_candidate_votes(election["_id"], vote.candidate_name):
            crud.delete_vote(vote.election_id, hashed_address)
            raise HTTPException(status_code=500, detail="Failed to update vote count")
        crud.mark_voted(hashed_address, vote.election_id)
    except HTTPException:
        raise
    except DuplicateKeyError:
        raise HTTPException(
            status_code=400, detail="You have already voted in this election according to our records"
        )
    except Exception as e:
        logger.error(f"Failed to record blockchain vote (tx {vote.transaction_hash}): {e}")
        raise HTTPException(status_code=500, detail="Failed to record vote")

    return {"success": True, "message": "Vote has been recorded successfully"}
