from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class VoterStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ElectionApproval(BaseModel):
    """Per-election decision taken by the admin for one voter."""

    model_config = ConfigDict(use_enum_values=True)

    election_id: str
    status: VoterStatus
    contract_address: Optional[str] = None
    is_whitelisted: bool = False
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None
    eth_tx_hash: Optional[str] = None


class Voter(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    first_name: str
    last_name: str
    aadhar: str
    phone_number: str
    country: str
    physical_address: str
    encrypted_address: str
    hashed_address: str
    status: VoterStatus = VoterStatus.pending
    election_approvals: List[ElectionApproval] = []
    is_whitelisted: bool = False
    has_voted: bool = False
    last_voted_election_id: Optional[str] = None
    created_at: Optional[datetime] = None
