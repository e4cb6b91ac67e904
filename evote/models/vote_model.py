from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Vote(BaseModel):
    election_id: str
    hashed_address: str
    candidate_name: str
    candidate_address: Optional[str] = None
    transaction_hash: Optional[str] = None
    timestamp: datetime
