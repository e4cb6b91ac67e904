import logging
import re

from fastapi import APIRouter, Depends, HTTPException

from evote import config, crud
from evote.blockchain import ChainClient, ChainError, get_chain
from evote.reconcile import refresh_vote_counts
from evote.routes import parse_object_id
from evote.schemas import (
    AdminLogin,
    CandidateCreate,
    ContractAddressUpdate,
    ElectionCreate,
    SendGasRequest,
    StatusUpdateRequest,
    VoterApproval,
    VotesUpdate,
)
from evote.security import (
    create_access_token,
    decrypt_address,
    is_admin,
    is_fresh_login_message,
    mask,
    recover_signer,
    require_admin,
)
from evote.seed import seed_database

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])
protected = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _get_election_or_404(election_id: str):
    election = crud.get_election(parse_object_id(election_id))
    if not election:
        raise HTTPException(status_code=404, detail="Election not found")
    return election


@router.post("/login")
def admin_login(login: AdminLogin):
    if not is_fresh_login_message(login.message):
        raise HTTPException(status_code=401, detail="Login message is malformed or expired")
    try:
        signer = recover_signer(login.message, login.signature)
    except Exception as e:
        logger.warning(f"Admin login with unreadable signature: {e}")
        raise HTTPException(status_code=401, detail="Invalid signature")
    if signer.lower() != login.address.lower() or not is_admin(signer):
        raise HTTPException(status_code=401, detail="Address is not an admin")
    token = create_access_token({"sub": signer})
    return {"access_token": token, "token_type": "bearer"}


# --- Elections ---

@protected.get("/elections")
def list_elections():
    try:
        return crud.serialize(crud.list_elections())
    except Exception as exc:
        logger.error(f"Failed to fetch elections: {exc}")
        raise HTTPException(status_code=500, detail="Failed to fetch elections")


@protected.post("/elections")
def create_election(election: ElectionCreate, chain: ChainClient = Depends(get_chain)):
    contract_address = election.contract_address
    if contract_address and not ADDRESS_PATTERN.match(contract_address):
        raise HTTPException(status_code=400, detail="Invalid contract address format")

    if election.deploy and not contract_address:
        try:
            contract_address = chain.create_election(election.title, election.description)
        except ChainError as e:
            raise HTTPException(status_code=502, detail=str(e))

    try:
        created = crud.create_election(
            election.title,
            election.description,
            contract_address,
            start_date=election.start_date,
            end_date=election.end_date,
        )
    except Exception as e:
        logger.error(f"Failed to create election: {e}")
        raise HTTPException(status_code=500, detail="Failed to create election")
    return {"message": "Election created successfully", "election": crud.serialize(created)}


@protected.patch("/elections/{election_id}/status")
def update_election_status(election_id: str, status_update: StatusUpdateRequest):
    if not crud.set_election_fields(parse_object_id(election_id), {"is_active": status_update.is_active}):
        raise HTTPException(status_code=404, detail="Election not found")
    state = "active" if status_update.is_active else "inactive"
    return {"success": True, "message": f"Election status updated to {state}"}


@protected.patch("/elections/{election_id}/contract-address")
def update_contract_address(election_id: str, update: ContractAddressUpdate):
    if not ADDRESS_PATTERN.match(update.contract_address):
        raise HTTPException(status_code=400, detail="Invalid contract address format")
    if not crud.set_election_fields(parse_object_id(election_id), {"contract_address": update.contract_address}):
        raise HTTPException(status_code=404, detail="Election not found")
    logger.info(f"Contract address of election {election_id} set to {update.contract_address}")
    return {"success": True, "message": "Contract address updated successfully"}


@protected.post("/elections/{election_id}/candidates")
def add_candidate(election_id: str, candidate: CandidateCreate, chain: ChainClient = Depends(get_chain)):
    election = _get_election_or_404(election_id)

    if any(c.get("address", "").lower() == candidate.address.lower() for c in election.get("candidates") or []):
        raise HTTPException(status_code=400, detail="Candidate with this address already exists")

    tx_hash = None
    if candidate.register_on_chain and election.get("contract_address"):
        try:
            tx_hash = chain.register_candidate(election["contract_address"], candidate.address, candidate.name)
        except ChainError as e:
            raise HTTPException(status_code=502, detail=str(e))

    try:
        created = crud.add_candidate(election["_id"], candidate.name, candidate.address)
    except Exception as e:
        if tx_hash is None:
            logger.error(f"Failed to add candidate: {e}")
            raise HTTPException(status_code=500, detail="Failed to add candidate")
        logger.error(f"Candidate registered on-chain ({tx_hash}) but database write failed: {e}")
        return {"message": "Candidate registered on-chain only", "transaction_hash": tx_hash, "mirrored": False}

    return {
        "message": "Candidate added successfully",
        "candidate": crud.serialize(created),
        "transaction_hash": tx_hash,
        "mirrored": True,
    }


@protected.patch("/elections/{election_id}/candidates/{index}/votes")
def update_candidate_votes(election_id: str, index: int, update: VotesUpdate):
    if index < 0:
        raise HTTPException(status_code=400, detail="Invalid candidate index")
    election = _get_election_or_404(election_id)
    if index >= len(election.get("candidates") or []):
        raise HTTPException(status_code=404, detail="Candidate not found")
    crud.set_candidate_votes(election["_id"], index, update.votes)
    return {"message": "Votes updated successfully", "votes": update.votes}


@protected.post("/elections/{election_id}/refresh-votes")
def refresh_votes(election_id: str, apply: bool = False, chain: ChainClient = Depends(get_chain)):
    election = _get_election_or_404(election_id)
    if not election.get("contract_address"):
        raise HTTPException(status_code=400, detail="Election has no contract address")
    try:
        return refresh_vote_counts(election, chain, apply=apply)
    except ChainError as e:
        raise HTTPException(status_code=502, detail=str(e))


@protected.post("/elections/{election_id}/end")
def end_election(election_id: str, chain: ChainClient = Depends(get_chain)):
    election = _get_election_or_404(election_id)
    contract_address = election.get("contract_address")
    if not contract_address:
        raise HTTPException(status_code=400, detail="Election has no contract address")
    try:
        tx_hash = chain.end_voting_and_declare_winner(contract_address)
        winner = chain.get_winner(contract_address)
    except ChainError as e:
        raise HTTPException(status_code=502, detail=str(e))

    mirrored = True
    try:
        crud.set_winner(election["_id"], winner)
    except Exception as e:
        mirrored = False
        logger.error(f"Winner declared on-chain ({tx_hash}) but database write failed: {e}")
    return {"success": True, "transaction_hash": tx_hash, "winner": winner, "mirrored": mirrored}


# --- Voters ---

@protected.get("/voters")
def list_voters():
    try:
        voters = crud.list_voters()
    except Exception as e:
        logger.error(f"Error in GET /api/admin/voters: {e}")
        return []
    logger.info(f"Found voters: {len(voters)}")
    return crud.serialize(voters)


@protected.post("/voters/approve")
def approve_voter(approval: VoterApproval, chain: ChainClient = Depends(get_chain)):
    approving = approval.action == "approve"
    if approving and (not approval.election_id or not approval.election_contract_address):
        raise HTTPException(status_code=400, detail="Election ID and contract address are required for approval")

    if approval.election_id:
        election = _get_election_or_404(approval.election_id)
        contract_address = election.get("contract_address")
        if approval.election_contract_address and (
            not contract_address or contract_address.lower() != approval.election_contract_address.lower()
        ):
            raise HTTPException(status_code=400, detail="Contract address does not match the election")

    recipient = None
    if approving:
        try:
            recipient = decrypt_address(approval.wallet_address)
        except ValueError as e:
            logger.error(f"Error decrypting address: {e}")
            raise HTTPException(status_code=500, detail="Failed to decrypt wallet address")
        if not ADDRESS_PATTERN.match(recipient):
            logger.error(f"Decrypted address has invalid format: {mask(recipient)}")
            raise HTTPException(status_code=500, detail="Failed to decrypt wallet address")

    voter = crud.get_voter_by_encrypted_address(approval.wallet_address)
    if not voter:
        raise HTTPException(status_code=404, detail="Voter not found")

    whitelist_tx = None
    if approving:
        try:
            whitelist_tx = chain.whitelist_voters(approval.election_contract_address, [recipient])
        except ChainError as e:
            raise HTTPException(status_code=502, detail=str(e))

    mirrored = True
    try:
        crud.apply_election_decision(
            voter, approval.action, approval.election_id, approval.election_contract_address
        )
    except Exception as e:
        if whitelist_tx is None:
            logger.error(f"Failed to record voter decision: {e}")
            raise HTTPException(status_code=500, detail="Failed to update voter")
        mirrored = False
        logger.error(f"Voter whitelisted on-chain ({whitelist_tx}) but database write failed: {e}")

    funding_tx = None
    if approving:
        try:
            funding_tx = chain.send_eth(recipient, config.GAS_AMOUNT_ETH)
            crud.record_funding(voter["_id"], funding_tx, approval.election_id)
        except Exception as e:
            # The voter stays approved even if funding fails
            logger.error(f"Error sending ETH to {mask(recipient)}: {e}")

    return {
        "success": True,
        "action": approval.action,
        "election_id": approval.election_id,
        "whitelist_transaction": whitelist_tx,
        "funding_transaction": funding_tx,
        "mirrored": mirrored,
    }


@protected.post("/send-gas")
def send_gas(request: SendGasRequest, chain: ChainClient = Depends(get_chain)):
    voter_id = parse_object_id(request.voter_id, label="voter")
    voter = crud.get_voter(voter_id)
    if not voter:
        raise HTTPException(status_code=404, detail="Voter not found")

    try:
        address = decrypt_address(voter["encrypted_address"])
        tx_hash = chain.send_eth(address, request.amount)
    except (ValueError, ChainError) as e:
        logger.error(f"Error sending gas ETH: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    crud.record_gas(voter_id, request.amount, tx_hash)
    return {
        "success": True,
        "message": f"Successfully sent {request.amount} ETH to {mask(address)}",
        "tx_hash": tx_hash,
    }


@protected.post("/seed")
def seed():
    if not config.ENABLE_SEED:
        raise HTTPException(status_code=403, detail="Seeding is disabled")
    try:
        voters, election = seed_database()
    except Exception as e:
        logger.error(f"Failed to seed database: {e}")
        raise HTTPException(status_code=500, detail="Failed to seed database")
    return {"message": "Database seeded successfully", "voters": len(voters), "election": crud.serialize(election)}
