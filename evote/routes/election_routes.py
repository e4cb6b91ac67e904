import logging

from fastapi import APIRouter, Depends, HTTPException

from evote import crud
from evote.blockchain import ChainClient, ChainError, get_chain
from evote.routes import parse_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/elections", tags=["Election"])


@router.get("/active")
def get_active_elections():
    try:
        return crud.serialize(crud.list_active_elections(only_open=True))
    except Exception as exc:
        logger.error(f"Failed to fetch active elections: {exc}")
        raise HTTPException(status_code=500, detail="Failed to fetch active elections")


@router.get("/{election_id}")
def get_election(election_id: str):
    election = crud.get_election(parse_object_id(election_id))
    if not election:
        raise HTTPException(status_code=404, detail="Election not found")
    return crud.serialize(election)


@router.get("/{election_id}/results")
def get_results(election_id: str, chain: ChainClient = Depends(get_chain)):
    """Live tallies read from the election contract."""
    election = crud.get_election(parse_object_id(election_id))
    if not election:
        raise HTTPException(status_code=404, detail="Election not found")
    if not election.get("contract_address"):
        raise HTTPException(status_code=400, detail="Election has no contract address")
    try:
        results = chain.get_election_results(election["contract_address"])
    except ChainError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"election_id": election_id, "title": election.get("title"), **results}
