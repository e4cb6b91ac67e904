import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from evote import crud
from evote.blockchain import ChainClient, get_chain
from evote.models.voter_model import VoterStatus
from evote.reconcile import chain_voted_elections
from evote.routes import parse_object_id
from evote.schemas import VoterRegistration
from evote.security import hash_address, mask

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/voter", tags=["Voter"])


@router.post("/register")
def register(registration: VoterRegistration):
    voter, existing_status = crud.register_voter(registration)
    if voter is None:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "You have already submitted a registration request",
                "status": existing_status,
            },
        )
    logger.info(f"Registration stored for {mask(registration.wallet_address)}")
    return {"message": "Registration submitted successfully", "status": voter["status"]}


@router.get("/status")
def voter_status(address: str = Query(..., min_length=1)):
    voter = crud.get_voter_by_address(address)
    if not voter:
        return {"is_registered": False, "status": "not_registered", "election_approvals": []}
    return {
        "is_registered": True,
        "status": voter.get("status"),
        "election_approvals": [
            {"election_id": a.get("election_id"), "status": a.get("status")}
            for a in voter.get("election_approvals") or []
        ],
    }


@router.get("/elections")
def voter_elections(address: str = Query(..., min_length=1)):
    """Active elections the voter has been approved for."""
    voter = crud.get_voter_by_address(address)
    if not voter:
        logger.info(f"Voter not found with address: {mask(address)}")
        raise HTTPException(status_code=404, detail="Voter not found")

    if voter.get("status") != VoterStatus.approved.value:
        return []

    approved = crud.approved_election_ids(voter)
    if not approved:
        # Approved before per-election approvals existed: every active election
        return crud.serialize(crud.list_active_elections())

    ids = [parse_object_id(election_id) for election_id in approved]
    return crud.serialize(crud.list_active_elections(ids=ids))


@router.get("/voting-status")
def voting_status(
    address: str = Query(..., min_length=1),
    check_chain: bool = False,
    chain: ChainClient = Depends(get_chain),
):
    voted = crud.voted_election_ids(hash_address(address))

    if check_chain:
        for election_id in chain_voted_elections(address, crud.list_active_elections(), chain):
            if election_id not in voted:
                voted.append(election_id)

    logger.info(f"Found {len(voted)} voted elections for address {mask(address)}")
    return {"address": address, "voted_elections": voted, "total_votes": len(voted)}
