from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, StrictBool, constr


# --- Voter ---

class VoterRegistration(BaseModel):
    wallet_address: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    aadhar: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    physical_address: str = Field(..., min_length=1)


class BlockchainVoteRequest(BaseModel):
    election_id: str
    candidate_name: str
    candidate_address: str
    voter_address: str
    transaction_hash: Optional[str] = None


class RelayVoteRequest(BaseModel):
    election_id: str
    candidate_address: str
    voter_address: str
    signed_transaction: str = Field(..., description="Hex encoded raw transaction signed by the voter wallet")


# --- Admin ---

class AdminLogin(BaseModel):
    address: str
    message: str
    signature: str


class ElectionCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    contract_address: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    deploy: bool = Field(default=False, description="Deploy a voting contract through the factory")


class StatusUpdateRequest(BaseModel):
    is_active: StrictBool


class ContractAddressUpdate(BaseModel):
    contract_address: str


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    register_on_chain: bool = True


class VotesUpdate(BaseModel):
    votes: int = Field(..., ge=0)


class VoterApproval(BaseModel):
    wallet_address: str = Field(..., min_length=1, description="Encrypted wallet address as listed to the admin")
    action: constr(pattern="^(approve|reject)$")
    election_id: Optional[str] = None
    election_contract_address: Optional[str] = None


class SendGasRequest(BaseModel):
    voter_id: str
    amount: str = "0.01"
