"""Pydantic schemas for the tweet challenge flow.

Learn: One explicit input model per endpoint. Missing or wrongly-typed
fields are rejected by FastAPI before the handler runs, so validation
errors never reach the database or the network.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ChallengeStart(BaseModel):
    handle: str
    name: Optional[str] = Field(None, max_length=100)


class ChallengeRead(BaseModel):
    id: str
    handle: str
    phrase: str
    verify_secret: str  # only ever returned here
    expires_at: datetime
    created_at: datetime


class ChallengeCreated(BaseModel):
    success: bool = True
    challenge: ChallengeRead
    instructions: list[str]


class ChallengeComplete(BaseModel):
    challenge_id: str = Field(..., min_length=1)
    verify_secret: str = Field(..., min_length=1)
    proof_url: str = Field(..., min_length=1)
    name: Optional[str] = Field(None, max_length=100)


class AgentRead(BaseModel):
    id: str
    name: str
    handle: Optional[str] = None
    provider: str


class TokenIssued(BaseModel):
    success: bool = True
    token: str
    token_type: str = "X-Clawbot-Identity"
    expires_in: int
    token_expires_at: datetime
    agent: AgentRead
