"""
Best-effort reconciliation between the contract mirror and on-chain state.

Nothing here is a synchronization protocol: counts are compared on demand
(an admin asks for a refresh) and written back only when asked to.
"""
import logging
from typing import Any, Dict, List

from evote import crud
from evote.blockchain import ChainClient, ChainError

logger = logging.getLogger(__name__)


def compare_vote_counts(election: Dict[str, Any], chain: ChainClient) -> List[Dict[str, Any]]:
    """Per-candidate mirror vs chain counts. Raises ChainError on read failure."""
    contract_address = election["contract_address"]
    rows = []
    for index, candidate in enumerate(election.get("candidates") or []):
        chain_votes = chain.get_votes_by_address(contract_address, candidate["address"])
        mirror_votes = int(candidate.get("votes") or 0)
        rows.append({
            "index": index,
            "name": candidate.get("name"),
            "address": candidate["address"],
            "mirror_votes": mirror_votes,
            "chain_votes": chain_votes,
            "in_sync": mirror_votes == chain_votes,
        })
    return rows


def refresh_vote_counts(election: Dict[str, Any], chain: ChainClient, apply: bool = False) -> Dict[str, Any]:
    rows = compare_vote_counts(election, chain)
    updated = []
    if apply:
        for row in rows:
            if row["in_sync"]:
                continue
            crud.set_candidate_votes(election["_id"], row["index"], row["chain_votes"])
            updated.append(row["index"])
            logger.info(
                f"Candidate {row['name']} votes {row['mirror_votes']} -> {row['chain_votes']} "
                f"(election {election['_id']})"
            )
    return {
        "election_id": str(election["_id"]),
        "candidates": rows,
        "in_sync": all(r["in_sync"] for r in rows),
        "applied": apply,
        "updated": updated,
    }


def chain_voted_elections(voter_address: str, elections: List[Dict[str, Any]], chain: ChainClient) -> List[str]:
    """Ids of elections whose contract reports ``hasVoted(voter_address)``."""
    voted = []
    for election in elections:
        contract_address = election.get("contract_address")
        if not contract_address:
            continue
        try:
            if chain.has_voted(contract_address, voter_address):
                voted.append(str(election["_id"]))
        except ChainError as e:
            logger.warning(f"Skipping on-chain vote check for election {election['_id']}: {e}")
    return voted
