from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Candidate(BaseModel):
    name: str
    address: str
    votes: int = 0
    created_at: Optional[datetime] = None


class Winner(BaseModel):
    address: str
    name: str
    votes: int


class Election(BaseModel):
    title: str = Field(..., examples=["Student Council Election 2024"])
    description: str
    contract_address: Optional[str] = None
    start_date: datetime
    end_date: datetime
    candidates: List[Candidate] = []
    is_active: bool = True
    winner: Optional[Winner] = None
    created_at: Optional[datetime] = None
